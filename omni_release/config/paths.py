"""Path constants and discovery for omni-release.

Defines the formula resource files and the install location.
"""

import os
from pathlib import Path


# Formula resources, relative to the tap checkout
FORMULA_RESOURCES_DIR = Path("Formula") / "resources"
DEFAULT_STORE_FILE = FORMULA_RESOURCES_DIR / "omni-versions.json"

# Name of the executable packed inside release tarballs
BINARY_NAME = "omni"

BIN_DIR_ENV = "OMNI_BIN_DIR"


def get_default_bin_dir() -> Path:
    """
    Get the directory the installer places the omni binary in.

    Returns:
        ``$OMNI_BIN_DIR`` if set, else ~/.local/bin
    """
    return Path(os.environ.get(BIN_DIR_ENV, Path.home() / ".local" / "bin"))
