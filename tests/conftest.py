"""Shared fixtures for docpatch tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from docpatch.core.models import Fix, FixCategory, FixList
from docpatch.storage.store import FileSystemStore

_ENV_VARS = (
    "DOCPATCH_ANALYSIS_DIR",
    "DOCPATCH_DOCUMENTS_DIR",
    "DOCPATCH_CDN_ENDPOINT",
    "DOCPATCH_DISTRIBUTION_ID",
    "DOCPATCH_CDN_TOKEN",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def store(tmp_path: Path) -> FileSystemStore:
    """A store laid out the way the default config resolves it."""
    return FileSystemStore(
        analysis_dir=tmp_path / ".docpatch" / "analysis",
        documents_dir=tmp_path / ".docpatch" / "documents",
    )


@pytest.fixture
def make_fix() -> Callable[..., Fix]:
    def _make_fix(
        fix_id: str = "fix-1",
        original: str = "Array for results",
        proposed: str = "Array<T> for results",
        category: FixCategory = FixCategory.CODE_UPDATE,
        rationale: str = "generic typing",
        confidence: float = 0.9,
    ) -> Fix:
        return Fix(
            id=fix_id,
            category=category,
            original_content=original,
            proposed_content=proposed,
            rationale=rationale,
            confidence=confidence,
        )

    return _make_fix


@pytest.fixture
def seed_session(store: FileSystemStore) -> Callable[..., FixList]:
    """Store a document and a fix list targeting it."""

    def _seed(
        fixes: list[Fix],
        document: str,
        session_id: str = "sess-1",
        filename: str = "guide.md",
    ) -> FixList:
        fix_list = FixList(
            session_id=session_id,
            document_url=f"https://docs.example.com/api/{filename}",
            fixes=fixes,
        )
        store.write_fix_list(fix_list)
        store.write_document(filename, document)
        return fix_list

    return _seed
