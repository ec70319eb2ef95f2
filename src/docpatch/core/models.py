"""Shared data models used across docpatch modules."""

from __future__ import annotations

import enum
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from docpatch.core.errors import InputError


class FixCategory(enum.Enum):
    CODE_UPDATE = "CODE_UPDATE"
    LINK_FIX = "LINK_FIX"
    CONTENT_ADDITION = "CONTENT_ADDITION"
    VERSION_UPDATE = "VERSION_UPDATE"
    FORMATTING_FIX = "FORMATTING_FIX"


class FixStatus(enum.Enum):
    PROPOSED = "PROPOSED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    APPLIED = "APPLIED"
    FAILED = "FAILED"


class MatchStrategy(enum.Enum):
    EXACT = "exact"
    WHITESPACE_TOLERANT = "whitespace_tolerant"
    FUZZY_TOKEN = "fuzzy_token"


@dataclass(frozen=True)
class Fix:
    """A proposed correction: an original span and its replacement."""

    id: str
    category: FixCategory
    original_content: str
    proposed_content: str
    rationale: str = ""
    confidence: float = 0.0
    line_start: int = 0
    line_end: int = 0
    status: FixStatus = FixStatus.PROPOSED
    generated_at: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Fix:
        """Build a Fix from its stored camelCase JSON form."""
        if not isinstance(data, dict):
            raise InputError(f"Fix entry must be an object, got {type(data).__name__}")
        for key in ("id", "category", "originalContent", "proposedContent"):
            if key not in data:
                raise InputError(f"Fix entry is missing '{key}'")
        try:
            category = FixCategory(data["category"])
        except ValueError:
            raise InputError(f"Unknown fix category: {data['category']!r}") from None
        try:
            status = FixStatus(data.get("status", "PROPOSED"))
        except ValueError:
            status = FixStatus.PROPOSED
        try:
            confidence = float(data.get("confidence", 0.0) or 0.0)
            line_start = int(data.get("lineStart", 0) or 0)
            line_end = int(data.get("lineEnd", 0) or 0)
        except (TypeError, ValueError) as e:
            raise InputError(f"Fix {data['id']!r} has a non-numeric field: {e}") from None

        return cls(
            id=str(data["id"]),
            category=category,
            original_content=str(data["originalContent"]),
            proposed_content=str(data["proposedContent"]),
            rationale=str(data.get("rationale", "")),
            confidence=confidence,
            line_start=line_start,
            line_end=line_end,
            status=status,
            generated_at=str(data.get("generatedAt", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category.value,
            "originalContent": self.original_content,
            "proposedContent": self.proposed_content,
            "rationale": self.rationale,
            "confidence": self.confidence,
            "lineStart": self.line_start,
            "lineEnd": self.line_end,
            "status": self.status.value,
            "generatedAt": self.generated_at,
        }


@dataclass
class FixList:
    """The fixes proposed for one session, plus the document they target."""

    session_id: str
    document_url: str
    fixes: list[Fix] = field(default_factory=list)
    document_hash: str = ""
    created_at: str = ""

    @classmethod
    def from_dict(cls, data: Any, session_id: str = "") -> FixList:
        if not isinstance(data, dict):
            raise InputError("Fix list must be a JSON object")
        raw_fixes = data.get("fixes")
        if not isinstance(raw_fixes, list):
            raise InputError("Fix list has no 'fixes' array")
        document_url = data.get("documentUrl")
        if not document_url or not isinstance(document_url, str):
            raise InputError("Fix list has no 'documentUrl'")

        return cls(
            session_id=str(data.get("sessionId") or session_id),
            document_url=document_url,
            fixes=[Fix.from_dict(item) for item in raw_fixes],
            document_hash=str(data.get("documentHash", "")),
            created_at=str(data.get("createdAt", "")),
        )

    def select(self, fix_ids: list[str] | set[str]) -> list[Fix]:
        """Return the fixes whose id was selected, in list order."""
        wanted = set(fix_ids)
        return [f for f in self.fixes if f.id in wanted]

    def summary(self) -> dict[str, Any]:
        by_category = Counter(f.category.value for f in self.fixes)
        average = (
            sum(f.confidence for f in self.fixes) / len(self.fixes) if self.fixes else 0.0
        )
        return {
            "totalFixes": len(self.fixes),
            "byCategory": {c.value: by_category.get(c.value, 0) for c in FixCategory},
            "averageConfidence": round(average, 2),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "documentUrl": self.document_url,
            "documentHash": self.document_hash,
            "createdAt": self.created_at,
            "fixes": [f.to_dict() for f in self.fixes],
            "summary": self.summary(),
        }


@dataclass(frozen=True)
class SpanMatch:
    """Where, and by which strategy, a fix's original text was found."""

    strategy: MatchStrategy
    start: int
    end: int
    text: str
    pattern: re.Pattern[str] | None = None


@dataclass(frozen=True)
class AppliedFix:
    """A fix that was located and substituted during a run."""

    fix_id: str
    category: FixCategory
    rationale: str
    strategy: MatchStrategy

    @classmethod
    def from_fix(cls, fix: Fix, strategy: MatchStrategy) -> AppliedFix:
        return cls(
            fix_id=fix.id,
            category=fix.category,
            rationale=fix.rationale,
            strategy=strategy,
        )


@dataclass
class FixOutcome:
    """Per-fix result of a run or preview."""

    fix_id: str
    applied: bool
    message: str
    strategy: MatchStrategy | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "fixId": self.fix_id,
            "applied": self.applied,
            "strategy": self.strategy.value if self.strategy else None,
            "message": self.message,
        }


@dataclass
class PatchResponse:
    """Outcome of one patch session, shaped for any request/response transport."""

    success: bool
    message: str = ""
    filename: str = ""
    invalidation_id: str | None = None
    error: str | None = None
    applied_count: int = 0
    outcomes: list[FixOutcome] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    status_code: int = 200

    @classmethod
    def failure(cls, error: str, status_code: int = 500) -> PatchResponse:
        return cls(success=False, error=error, status_code=status_code)

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            return {"error": self.error or "Failed to apply fixes"}

        body: dict[str, Any] = {
            "success": True,
            "message": self.message,
            "filename": self.filename,
            "appliedCount": self.applied_count,
        }
        if self.invalidation_id:
            body["invalidationId"] = self.invalidation_id
        if self.warnings:
            body["warnings"] = list(self.warnings)
        return body
