"""Tests for the patch session orchestrator."""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest

from docpatch.cdn.invalidator import CacheInvalidator
from docpatch.core.config import DocPatchConfig
from docpatch.core.errors import InputError, InvalidationError, PersistenceError
from docpatch.core.models import FixList, MatchStrategy
from docpatch.patch.engine import PatchEngine, document_filename
from docpatch.storage.store import FileSystemStore, StoredDocument

SCENARIO_DOC = "Use Array<Finding> for results.\n\n## Support\nContact us."


class RecordingInvalidator(CacheInvalidator):
    def __init__(self):
        self.calls: list[list[str]] = []

    def invalidate(self, paths: list[str]) -> str:
        self.calls.append(list(paths))
        return "INV123"


class FailingInvalidator(CacheInvalidator):
    def invalidate(self, paths: list[str]) -> str:
        raise InvalidationError("CDN invalidation failed: 503 Service Unavailable")


@pytest.fixture
def invalidator() -> RecordingInvalidator:
    return RecordingInvalidator()


@pytest.fixture
def engine(store: FileSystemStore, invalidator: RecordingInvalidator) -> PatchEngine:
    return PatchEngine(store=store, invalidator=invalidator, config=DocPatchConfig())


class TestDocumentFilename:
    def test_last_path_segment(self):
        assert document_filename("https://docs.example.com/api/guide.md") == "guide.md"

    def test_query_and_fragment_ignored(self):
        assert document_filename("https://docs.example.com/guide.md?v=2#intro") == "guide.md"

    def test_bare_filename(self):
        assert document_filename("guide.md") == "guide.md"

    def test_trailing_slash_has_no_filename(self):
        with pytest.raises(InputError):
            document_filename("https://docs.example.com/api/")


class TestApplySession:
    def test_end_to_end_scenario(self, engine, store, invalidator, seed_session, make_fix):
        seed_session([make_fix()], SCENARIO_DOC)

        response = engine.apply_session("sess-1", ["fix-1"])

        assert response.success is True
        assert response.applied_count == 1
        assert response.filename == "guide.md"
        assert response.outcomes[0].strategy == MatchStrategy.FUZZY_TOKEN

        expected = (
            "Use Array<T> for results.\n\n"
            "## Changelog\n"
            f"\n### [{date.today().isoformat()}] - AI Update\n"
            "- 1 fixes applied:\n"
            "  - CODE_UPDATE: generic typing\n"
            "\n---\n\n"
            "## Support\nContact us."
        )
        assert store.read_document("guide.md").body == expected

    def test_response_shape(self, engine, seed_session, make_fix):
        seed_session([make_fix()], SCENARIO_DOC)

        body = engine.apply_session("sess-1", ["fix-1"]).to_dict()

        assert body["success"] is True
        assert body["filename"] == "guide.md"
        assert body["invalidationId"] == "INV123"
        assert body["message"].startswith("Applied 1 fixes to guide.md.")
        assert "INV123" in body["message"]
        assert "warnings" not in body

    def test_html_rendition_written(self, engine, store, seed_session, make_fix):
        seed_session([make_fix()], SCENARIO_DOC)

        engine.apply_session("sess-1", ["fix-1"])

        html = store.read_document("guide.html")
        assert html.content_type == "text/html"
        assert "Array&lt;T&gt;" in html.body or "Array<T>" in html.body
        assert store.content_type("guide.md") == "text/markdown"

    def test_cdn_paths(self, engine, invalidator, seed_session, make_fix):
        seed_session([make_fix()], SCENARIO_DOC)

        engine.apply_session("sess-1", ["fix-1"])

        assert invalidator.calls == [["/guide.md", "/CHANGELOG.md", "/guide.html"]]

    def test_analysis_artifacts_deleted(self, engine, store, seed_session, make_fix):
        seed_session([make_fix()], SCENARIO_DOC)
        session_dir = store.session_dir("sess-1")
        for name in ("dimension-results.json", "processed-content.json", "report.json"):
            (session_dir / name).write_text("{}")

        engine.apply_session("sess-1", ["fix-1"])

        assert sorted(p.name for p in session_dir.iterdir()) == ["fixes.json"]

    def test_only_selected_fixes_applied(self, engine, store, seed_session, make_fix):
        document = "Alpha text here. Beta text here."
        seed_session(
            [
                make_fix(fix_id="a", original="Alpha text here", proposed="Alpha changed"),
                make_fix(fix_id="b", original="Beta text here", proposed="Beta changed"),
            ],
            document,
        )

        response = engine.apply_session("sess-1", ["b"])

        body = store.read_document("guide.md").body
        assert response.applied_count == 1
        assert body.startswith("Alpha text here. Beta changed.")

    def test_empty_selection_is_noop(self, engine, store, seed_session, make_fix):
        seed_session([make_fix()], SCENARIO_DOC)

        response = engine.apply_session("sess-1", [])

        assert response.success is True
        assert response.applied_count == 0
        assert store.read_document("guide.md").body == SCENARIO_DOC
        assert store.list_backups() == []
        assert "changelog" not in response.message.lower()

    def test_unmatched_fixes_still_succeed(self, engine, store, seed_session, make_fix):
        seed_session([make_fix(original="text that is not there at all")], SCENARIO_DOC)

        response = engine.apply_session("sess-1", ["fix-1"])

        assert response.success is True
        assert response.applied_count == 0
        assert response.outcomes[0].applied is False
        assert store.read_document("guide.md").body == SCENARIO_DOC

    def test_prior_version_backed_up(self, engine, store, seed_session, make_fix):
        seed_session([make_fix()], SCENARIO_DOC)

        engine.apply_session("sess-1", ["fix-1"])

        backups = store.list_backups()
        assert len(backups) == 1
        assert backups[0].key == "guide.md"
        assert backups[0].session_id == "sess-1"
        assert store.read_backup(backups[0]) == SCENARIO_DOC

    def test_backups_can_be_disabled(self, store, invalidator, seed_session, make_fix):
        config = DocPatchConfig()
        config.store.backup_before_write = False
        engine = PatchEngine(store=store, invalidator=invalidator, config=config)
        seed_session([make_fix()], SCENARIO_DOC)

        engine.apply_session("sess-1", ["fix-1"])

        assert store.list_backups() == []

    def test_without_cdn(self, store, seed_session, make_fix):
        engine = PatchEngine(store=store)
        seed_session([make_fix()], SCENARIO_DOC)

        response = engine.apply_session("sess-1", ["fix-1"])

        assert response.success is True
        assert response.invalidation_id is None
        assert "invalidationId" not in response.to_dict()
        assert "CDN" not in response.message


class TestInputFailures:
    def test_missing_session_id(self, engine):
        response = engine.apply_session("", ["fix-1"])

        assert response.success is False
        assert response.status_code == 400
        assert response.to_dict() == {"error": "sessionId is required"}

    def test_unknown_session(self, engine, invalidator):
        response = engine.apply_session("nope", ["fix-1"])

        assert response.success is False
        assert response.status_code == 404
        assert invalidator.calls == []

    def test_unparseable_fix_list(self, engine, store, seed_session, make_fix):
        seed_session([make_fix()], SCENARIO_DOC)
        (store.session_dir("sess-1") / "fixes.json").write_text("{not json")

        response = engine.apply_session("sess-1", ["fix-1"])

        assert response.success is False
        assert response.status_code == 400
        assert store.read_document("guide.md").body == SCENARIO_DOC

    def test_non_numeric_fix_field(self, engine, store, seed_session, make_fix):
        seed_session([make_fix()], SCENARIO_DOC)
        raw = make_fix().to_dict()
        raw["confidence"] = "very high"
        (store.session_dir("sess-1") / "fixes.json").write_text(json.dumps({
            "documentUrl": "https://docs.example.com/api/guide.md",
            "fixes": [raw],
        }))

        response = engine.apply_session("sess-1", ["fix-1"])

        assert response.success is False
        assert response.status_code == 400
        assert store.read_document("guide.md").body == SCENARIO_DOC

    def test_undeterminable_filename(self, engine, store, make_fix):
        session_dir = store.session_dir("sess-1")
        session_dir.mkdir(parents=True)
        (session_dir / "fixes.json").write_text(json.dumps({
            "documentUrl": "https://docs.example.com/api/",
            "fixes": [make_fix().to_dict()],
        }))

        response = engine.apply_session("sess-1", ["fix-1"])

        assert response.success is False
        assert "filename" in response.error

    def test_missing_document(self, engine, store, make_fix):
        store.write_fix_list(FixList("sess-1", "https://docs.example.com/gone.md", [make_fix()]))

        response = engine.apply_session("sess-1", ["fix-1"])

        assert response.success is False
        assert response.status_code == 404


class TestSideEffectFailures:
    def test_primary_write_failure_stops_everything(self, tmp_path: Path, seed_session, make_fix, invalidator):
        class ReadOnlyStore(FileSystemStore):
            def write_document(self, key, body, content_type="text/markdown", expected_sha256=None):
                raise PersistenceError(f"Could not write {key}: read-only")

        seed_session([make_fix()], SCENARIO_DOC)
        store = ReadOnlyStore(tmp_path / ".docpatch" / "analysis", tmp_path / ".docpatch" / "documents")
        engine = PatchEngine(store=store, invalidator=invalidator)

        response = engine.apply_session("sess-1", ["fix-1"])

        assert response.success is False
        assert response.status_code == 500
        assert "read-only" in response.error
        assert invalidator.calls == []
        assert not (tmp_path / ".docpatch" / "documents" / "guide.html").exists()

    def test_concurrent_writer_is_detected(self, tmp_path: Path, seed_session, make_fix, invalidator):
        class RacingStore(FileSystemStore):
            def read_document(self, key):
                document = super().read_document(key)
                # Another run writes between our read and our write.
                (self.documents_dir / key).write_text("changed elsewhere")
                return document

        seed_session([make_fix()], SCENARIO_DOC)
        store = RacingStore(tmp_path / ".docpatch" / "analysis", tmp_path / ".docpatch" / "documents")
        engine = PatchEngine(store=store, invalidator=invalidator)

        response = engine.apply_session("sess-1", ["fix-1"])

        assert response.success is False
        assert "modified" in response.error
        assert (tmp_path / ".docpatch" / "documents" / "guide.md").read_text() == "changed elsewhere"
        assert invalidator.calls == []
        assert store.list_backups() == []

    def test_cdn_failure_is_reported_not_fatal(self, store, seed_session, make_fix):
        engine = PatchEngine(store=store, invalidator=FailingInvalidator())
        seed_session([make_fix()], SCENARIO_DOC)

        response = engine.apply_session("sess-1", ["fix-1"])

        assert response.success is True
        assert response.invalidation_id is None
        assert any("503" in w for w in response.warnings)
        assert "Array<T>" in store.read_document("guide.md").body
        assert response.to_dict()["warnings"]

    def test_render_failure_is_reported_not_fatal(self, engine, store, invalidator, seed_session, make_fix, monkeypatch):
        def broken_render(*args, **kwargs):
            raise ValueError("renderer exploded")

        monkeypatch.setattr("docpatch.patch.engine.render_html", broken_render)
        seed_session([make_fix()], SCENARIO_DOC)

        response = engine.apply_session("sess-1", ["fix-1"])

        assert response.success is True
        assert any("renderer exploded" in w for w in response.warnings)
        assert "Array<T>" in store.read_document("guide.md").body
        assert len(invalidator.calls) == 1

    def test_analysis_cache_failure_is_only_logged(self, tmp_path: Path, seed_session, make_fix, invalidator, caplog):
        class StickyStore(FileSystemStore):
            def delete_session_artifact(self, session_id, name):
                raise OSError("permission denied")

        seed_session([make_fix()], SCENARIO_DOC)
        store = StickyStore(tmp_path / ".docpatch" / "analysis", tmp_path / ".docpatch" / "documents")
        engine = PatchEngine(store=store, invalidator=invalidator)

        with caplog.at_level("WARNING"):
            response = engine.apply_session("sess-1", ["fix-1"])

        assert response.success is True
        assert response.warnings == []
        assert "permission denied" in caplog.text

    def test_backup_failure_after_write_is_a_warning(self, tmp_path: Path, seed_session, make_fix, invalidator):
        class FullBackupStore(FileSystemStore):
            def backup_document(self, key, body, session_id="", run_id=None, replaced_sha256=""):
                raise OSError("no space left on device")

        seed_session([make_fix()], SCENARIO_DOC)
        store = FullBackupStore(tmp_path / ".docpatch" / "analysis", tmp_path / ".docpatch" / "documents")
        engine = PatchEngine(store=store, invalidator=invalidator)

        response = engine.apply_session("sess-1", ["fix-1"])

        assert response.success is True
        assert any("not backed up" in w for w in response.warnings)
        assert "Array<T>" in store.read_document("guide.md").body
        assert len(invalidator.calls) == 1

    def test_analysis_cache_task_error_is_logged(self, engine, seed_session, make_fix, monkeypatch, caplog):
        def broken(*args, **kwargs):
            raise RuntimeError("cache bucket unreachable")

        monkeypatch.setattr("docpatch.patch.engine.invalidate_analysis_cache", broken)
        seed_session([make_fix()], SCENARIO_DOC)

        with caplog.at_level("WARNING"):
            response = engine.apply_session("sess-1", ["fix-1"])

        assert response.success is True
        assert response.warnings == []
        assert "cache bucket unreachable" in caplog.text

    def test_unexpected_error_becomes_response(self, store, seed_session, make_fix):
        class ExplodingStore(FileSystemStore):
            def read_document(self, key) -> StoredDocument:
                raise RuntimeError("disk on fire")

        seed_session([make_fix()], SCENARIO_DOC)
        engine = PatchEngine(store=ExplodingStore(store.analysis_dir, store.documents_dir))

        response = engine.apply_session("sess-1", ["fix-1"])

        assert response.success is False
        assert response.to_dict() == {"error": "disk on fire"}


class TestPreviewSession:
    def test_preview_does_not_write(self, engine, store, invalidator, seed_session, make_fix):
        seed_session([make_fix()], SCENARIO_DOC)

        response = engine.preview_session("sess-1", ["fix-1"])

        assert response.success is True
        assert response.applied_count == 1
        assert response.outcomes[0].strategy == MatchStrategy.FUZZY_TOKEN
        assert store.read_document("guide.md").body == SCENARIO_DOC
        assert invalidator.calls == []

    def test_preview_of_unknown_session(self, engine):
        response = engine.preview_session("nope", ["fix-1"])
        assert response.success is False
