"""Release notes parser.

Turns the markdown body of a GitHub release into structured ReleaseNotes.
Release notes are written by humans, so the grammar is line oriented and
lenient: lines it does not understand are dropped, never reported.

Recognized layout::

    ## :sparkles: New features
    - [`abc1234`](https://github.com/...) **cli:** ✨ Add thing (PR #12 by @alice)
      - addresses issue #7 opened by @bob

    ## :boom: Breaking changes
    - 💥 Remove old flag (abc1234 by @alice)
        The old flag was deprecated in 1.0
"""

import logging
import re
from typing import Dict, List, Optional

from omni_release.updater.release import ChangeEntry, ReleaseNotes

logger = logging.getLogger("omni_release.notes")


CATEGORY_MARKERS = {
    "features": (":sparkles:", "✨"),
    "fixes": (":bug:", "\U0001f41b"),
    "breaking": (":boom:", "\U0001f4a5"),
}

HEADING_PATTERN = re.compile(r"^\s{0,3}#{1,6}\s+(?P<title>.*)$")

ENTRY_PATTERN = re.compile(
    r"^\s*[-*]\s+"
    r"(?:\[`?(?P<commit>[^\]`]*)`?\]\((?P<link>[^)]*)\)\s+)?"
    r"(?:\*\*(?P<scope>[^*]+?):?\*\*:?\s+)?"
    r"(?P<emoji>:[a-z0-9_+-]+:|[^\x00-\x7f\s]+)\s*"
    r"(?P<summary>.+?)"
    r"(?:\s+\((?:PR\s+#(?P<pr>\d+)|`?(?P<attr_commit>[0-9a-fA-F]{7,40})`?)"
    r"\s+by\s+@(?P<author>[\w-]+)\))?"
    r"\s*$"
)

ISSUE_PATTERN = re.compile(
    r"^[\W_]*addresses\s+issue\s+#(?P<issue>\d+)"
    r"(?:\s+opened\s+by\s+@(?P<author>[\w-]+))?\W*$",
    re.IGNORECASE,
)

CAUSE_PATTERN = re.compile(r"^(?: {2,}|\t)\s*(?P<text>\S.*?)\s*$")


def heading_category(line: str) -> Optional[str]:
    """
    Category a heading line opens.

    Returns:
        The category, "" for a heading without a known marker,
        or None if the line is not a heading
    """
    match = HEADING_PATTERN.match(line)
    if not match:
        return None
    title = match["title"]
    for category, markers in CATEGORY_MARKERS.items():
        if any(marker in title for marker in markers):
            return category
    return ""


def parse_entry(line: str) -> Optional[dict]:
    """
    Parse one bullet line into the fields of a ChangeEntry.

    Returns:
        Dict of the non-empty fields, or None if the line does not match
    """
    match = ENTRY_PATTERN.match(line)
    if not match:
        return None

    fields = {
        "commit": match["commit"] or match["attr_commit"],
        "link": match["link"],
        "scope": match["scope"].strip() if match["scope"] else None,
        "author": match["author"],
        "emoji": match["emoji"],
        "summary": match["summary"].strip(),
    }
    entry = {key: value for key, value in fields.items() if value}
    if match["pr"]:
        entry["pr"] = int(match["pr"])
    return entry


def _freeze(entry: dict) -> ChangeEntry:
    issues = entry.pop("issues", None)
    cause = entry.pop("cause", None)
    return ChangeEntry(
        issues=frozenset(issues or ()),
        cause=" ".join(cause) if cause else None,
        **entry,
    )


def parse_release_notes(markdown: Optional[str]) -> Optional[ReleaseNotes]:
    """
    Parse release notes markdown.

    Args:
        markdown: Release body

    Returns:
        ReleaseNotes, or None if the body is empty or has no entries
    """
    if not markdown or not markdown.strip():
        return None

    entries: Dict[str, List[dict]] = {}
    category: Optional[str] = None
    current: Optional[dict] = None

    for line in markdown.splitlines():
        opened = heading_category(line)
        if opened is not None:
            category = opened or None
            current = None
            continue

        if current is not None:
            issue = ISSUE_PATTERN.match(line)
            if issue:
                current.setdefault("issues", set()).add(int(issue["issue"]))
                continue
            if category == "breaking" and not parse_entry(line):
                cause = CAUSE_PATTERN.match(line)
                if cause:
                    current.setdefault("cause", []).append(cause["text"])
                    continue
            current = None

        if category is None:
            continue

        current = parse_entry(line)
        if current is not None:
            entries.setdefault(category, []).append(current)

    notes = {
        name: tuple(_freeze(entry) for entry in items)
        for name, items in entries.items()
        if items
    }
    if not notes:
        return None

    logger.debug(
        "Parsed release notes: "
        + ", ".join(f"{len(items)} {name}" for name, items in notes.items())
    )
    return ReleaseNotes(categories=notes)
