"""Undo/rollback support for patched documents."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from docpatch.cdn.invalidator import CacheInvalidator, HttpCacheInvalidator, invalidation_paths
from docpatch.core.config import DocPatchConfig, load_config
from docpatch.core.errors import PatchError
from docpatch.patch.engine import invalidate_analysis_cache
from docpatch.patch.render import html_filename, render_html
from docpatch.storage.store import (
    HTML_CONTENT_TYPE,
    MARKDOWN_CONTENT_TYPE,
    BackupEntry,
    DocumentStore,
    FileSystemStore,
)

logger = logging.getLogger(__name__)


@dataclass
class RestoreResult:
    """Result of restoring one document."""

    success: bool
    message: str
    key: str = ""
    invalidation_id: str | None = None


class UndoManager:
    """Restores documents from the backups taken after each patch write.

    A restore only goes through while the document is still the version the
    backed-up run wrote; a backup is consumed once restored.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: DocPatchConfig | None = None,
        invalidator: CacheInvalidator | None = None,
    ):
        self.store = store
        self.config = config or DocPatchConfig()
        self.invalidator = invalidator

    @classmethod
    def from_config(
        cls,
        project_path: Path | None = None,
        config: DocPatchConfig | None = None,
    ) -> UndoManager:
        project_path = (project_path or Path.cwd()).resolve()
        config = config or load_config(project_path)
        return cls(
            store=FileSystemStore.from_config(config, project_path),
            config=config,
            invalidator=HttpCacheInvalidator.from_config(config.cdn),
        )

    def list_undoable(self) -> list[BackupEntry]:
        """List all document versions that can be restored, newest first."""
        return self.store.list_backups()

    def undo(self, key: str) -> RestoreResult:
        """Restore the most recent backup of ``key``."""
        for entry in self.list_undoable():
            if entry.key == key:
                return self._restore(entry, [entry])

        return RestoreResult(success=False, message=f"No undo history for {key}", key=key)

    def undo_last_session(self) -> list[RestoreResult]:
        """Restore every document backed up by the most recent patch run."""
        entries = self.list_undoable()
        if not entries:
            return []

        latest = [e for e in entries if e.run_id == entries[0].run_id]
        by_key: dict[str, list[BackupEntry]] = {}
        for entry in latest:
            by_key.setdefault(entry.key, []).append(entry)

        # Entries are newest first; the oldest backup of a key in the run is
        # the version from before the run began.
        return [self._restore(group[-1], group) for group in reversed(list(by_key.values()))]

    def _restore(self, entry: BackupEntry, consumed: list[BackupEntry]) -> RestoreResult:
        # The newest backup of the key records the hash of the current version.
        expected = consumed[0].replaced_sha256 or None
        try:
            body = self.store.read_backup(entry)
            self.store.write_document(entry.key, body, MARKDOWN_CONTENT_TYPE, expected_sha256=expected)
        except PatchError as e:
            return RestoreResult(success=False, message=str(e), key=entry.key)

        for used in consumed:
            self.store.discard_backup(used)

        message = f"Restored {entry.key} from backup {entry.timestamp}"
        if self.config.render.enabled:
            target = html_filename(entry.key)
            try:
                page = render_html(body, entry.key, self.config.render.stylesheet)
                self.store.write_document(target, page, HTML_CONTENT_TYPE)
            except Exception as e:
                logger.warning("Could not re-render %s: %s", target, e)
                message += f" (HTML rendition not updated: {e})"

        if entry.session_id:
            invalidate_analysis_cache(self.store, entry.session_id, self.config.session.analysis_artifacts)

        invalidation_id = None
        if self.invalidator is not None:
            paths = invalidation_paths(entry.key, self.config.changelog.site_changelog_path)
            try:
                invalidation_id = self.invalidator.invalidate(paths)
            except Exception as e:
                logger.warning("CDN invalidation for %s failed: %s", entry.key, e)
                message += f" (CDN invalidation failed: {e})"
            else:
                message += f". CDN cache purge started (ID: {invalidation_id})"

        logger.info("%s", message)
        return RestoreResult(success=True, message=message, key=entry.key, invalidation_id=invalidation_id)
