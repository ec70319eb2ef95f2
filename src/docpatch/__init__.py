"""docpatch: locate and apply AI-proposed fixes to markdown documents."""

from docpatch._version import __version__
from docpatch.core.models import AppliedFix, Fix, FixCategory, FixList, MatchStrategy, PatchResponse
from docpatch.patch.changelog import insert_changelog
from docpatch.patch.engine import PatchEngine
from docpatch.patch.locator import locate

__all__ = [
    "__version__",
    "AppliedFix",
    "Fix",
    "FixCategory",
    "FixList",
    "MatchStrategy",
    "PatchResponse",
    "PatchEngine",
    "insert_changelog",
    "locate",
]
