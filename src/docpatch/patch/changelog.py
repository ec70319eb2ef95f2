"""In-document changelog maintenance."""

from __future__ import annotations

import logging
import re
from datetime import date

from docpatch.core.config import ChangelogConfig
from docpatch.core.models import AppliedFix

logger = logging.getLogger(__name__)

CHANGELOG_HEADING = re.compile(r"^##[ \t]+Changelog\b[^\n]*$", re.IGNORECASE | re.MULTILINE)
SUPPORT_HEADING = re.compile(r"^##[ \t]+Support\b", re.IGNORECASE | re.MULTILINE)


def compose_entry(applied: list[AppliedFix], today: date | None = None, marker: str = "AI Update") -> str:
    """Build one dated changelog entry listing every applied fix."""
    today = today or date.today()
    lines = [
        "",
        f"### [{today.isoformat()}] - {marker}",
        f"- {len(applied)} fixes applied:",
    ]
    lines.extend(f"  - {fix.category.value}: {fix.rationale}" for fix in applied)
    return "\n".join(lines) + "\n"


def insert_changelog(
    document: str,
    applied: list[AppliedFix],
    today: date | None = None,
    config: ChangelogConfig | None = None,
) -> str:
    """Insert a changelog entry for ``applied``; no-op when nothing was applied.

    Placement: under an existing ``## Changelog`` heading, else in a new
    section just before ``## Support``, else in a new section at the end.
    """
    if not applied:
        return document

    config = config or ChangelogConfig()
    entry = compose_entry(applied, today, config.marker)

    heading = CHANGELOG_HEADING.search(document)
    if heading:
        logger.info("Appended to existing Changelog section")
        return document[: heading.end()] + "\n" + entry + document[heading.end() :]

    support = SUPPORT_HEADING.search(document)
    if support:
        logger.info("Inserted Changelog section before Support")
        section = f"## Changelog\n{entry}\n---\n\n"
        return document[: support.start()] + section + document[support.start() :]

    logger.info("Appended Changelog section to end of document")
    return document + f"\n\n---\n\n## Changelog\n{entry}"
