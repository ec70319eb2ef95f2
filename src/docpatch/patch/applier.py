"""Sequential fix application against a working copy of a document."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from docpatch.core.config import MatchConfig
from docpatch.core.models import AppliedFix, Fix, FixOutcome, SpanMatch
from docpatch.patch.locator import locate

logger = logging.getLogger(__name__)


@dataclass
class PatchRun:
    """Working document plus what happened to each fix."""

    content: str
    applied: list[AppliedFix] = field(default_factory=list)
    outcomes: list[FixOutcome] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return len(self.applied)


def apply_match(document: str, match: SpanMatch, replacement: str) -> str:
    """Replace the matched span with ``replacement``, taken literally."""
    return document[: match.start] + replacement + document[match.end :]


def apply_fixes(document: str, fixes: list[Fix], config: MatchConfig | None = None) -> PatchRun:
    """Apply ``fixes`` in order; each one sees the edits made before it."""
    run = PatchRun(content=document)

    for fix in fixes:
        logger.debug("Attempting to apply fix %s (%s)", fix.id, fix.category.value)
        match = locate(run.content, fix.original_content, config)

        if match is None:
            logger.warning(
                "Fix %s not applied: original content not found (%.50r)",
                fix.id,
                fix.original_content,
            )
            run.outcomes.append(FixOutcome(
                fix_id=fix.id,
                applied=False,
                message="Original content not found in document",
            ))
            continue

        run.content = apply_match(run.content, match, fix.proposed_content)
        run.applied.append(AppliedFix.from_fix(fix, match.strategy))
        run.outcomes.append(FixOutcome(
            fix_id=fix.id,
            applied=True,
            strategy=match.strategy,
            message=f"Applied via {match.strategy.value.replace('_', ' ')} match",
        ))
        logger.info("Applied fix %s via %s match", fix.id, match.strategy.value)

    return run


def preview_fixes(document: str, fixes: list[Fix], config: MatchConfig | None = None) -> list[FixOutcome]:
    """Dry run of :func:`apply_fixes`: report outcomes, keep nothing."""
    return apply_fixes(document, fixes, config).outcomes
