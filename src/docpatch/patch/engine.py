"""Patch Engine: drives one patch session end to end."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable
from urllib.parse import unquote, urlsplit

from docpatch.cdn.invalidator import CacheInvalidator, HttpCacheInvalidator, invalidation_paths
from docpatch.core.config import DocPatchConfig, load_config
from docpatch.core.errors import InputError, PatchError
from docpatch.core.models import FixList, PatchResponse
from docpatch.patch.applier import apply_fixes, preview_fixes
from docpatch.patch.changelog import insert_changelog
from docpatch.patch.render import html_filename, render_html
from docpatch.storage.store import (
    HTML_CONTENT_TYPE,
    MARKDOWN_CONTENT_TYPE,
    DocumentStore,
    FileSystemStore,
    StoredDocument,
)

logger = logging.getLogger(__name__)


def document_filename(document_url: str) -> str:
    """Storage key of a document: the last path segment of its URL."""
    path = urlsplit(document_url).path
    filename = unquote(path.split("/")[-1])
    if not filename:
        raise InputError(f"Could not determine filename from URL: {document_url!r}")
    return filename


class PatchEngine:
    """Locates and applies fixes to a stored document, then publishes it."""

    def __init__(
        self,
        store: DocumentStore,
        invalidator: CacheInvalidator | None = None,
        config: DocPatchConfig | None = None,
    ):
        self.store = store
        self.invalidator = invalidator
        self.config = config or DocPatchConfig()

    @classmethod
    def from_config(
        cls,
        project_path: Path | None = None,
        config: DocPatchConfig | None = None,
    ) -> PatchEngine:
        project_path = (project_path or Path.cwd()).resolve()
        config = config or load_config(project_path)
        return cls(
            store=FileSystemStore.from_config(config, project_path),
            invalidator=HttpCacheInvalidator.from_config(config.cdn),
            config=config,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def apply_session(self, session_id: str, selected_fix_ids: list[str] | None = None) -> PatchResponse:
        """Apply the selected fixes of a session. Never raises."""
        logger.info("Starting fix application for session %s", session_id)
        try:
            return self._apply(session_id, list(selected_fix_ids or []))
        except PatchError as e:
            logger.error("Patch session %s failed: %s", session_id, e)
            return PatchResponse.failure(str(e), e.status_code)
        except Exception as e:
            logger.exception("Error applying fixes for session %s", session_id)
            return PatchResponse.failure(str(e) or "Failed to apply fixes")

    def preview_session(self, session_id: str, selected_fix_ids: list[str] | None = None) -> PatchResponse:
        """Report which selected fixes would apply, without writing anything."""
        try:
            fix_list = self._load_fix_list(session_id)
            filename = document_filename(fix_list.document_url)
            document = self.store.read_document(filename)
            selected = fix_list.select(list(selected_fix_ids or []))
            outcomes = preview_fixes(document.body, selected, self.config.match)
        except PatchError as e:
            return PatchResponse.failure(str(e), e.status_code)

        applicable = sum(1 for o in outcomes if o.applied)
        return PatchResponse(
            success=True,
            message=f"{applicable} of {len(outcomes)} fixes would apply to {filename}.",
            filename=filename,
            applied_count=applicable,
            outcomes=outcomes,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _apply(self, session_id: str, selected_fix_ids: list[str]) -> PatchResponse:
        fix_list = self._load_fix_list(session_id)
        filename = document_filename(fix_list.document_url)
        document = self.store.read_document(filename)

        selected = fix_list.select(selected_fix_ids)
        run = apply_fixes(document.body, selected, self.config.match)
        content = insert_changelog(run.content, run.applied, config=self.config.changelog)

        warnings: list[str] = []
        backup_warning = self._persist(filename, document, content, session_id)
        if backup_warning:
            warnings.append(backup_warning)

        render_warning = self._render(filename, content)
        if render_warning:
            warnings.append(render_warning)

        settled = _settle({
            "analysis_cache": lambda: self._invalidate_analysis_cache(session_id),
            "cdn": lambda: self._invalidate_cdn(filename),
        })
        _, cache_error = settled["analysis_cache"]
        if cache_error is not None:
            logger.warning("Analysis cache invalidation for %s failed: %s", session_id, cache_error)

        invalidation_id, cdn_error = settled["cdn"]
        if cdn_error is not None:
            logger.warning("CDN invalidation for %s failed: %s", filename, cdn_error)
            warnings.append(f"CDN invalidation failed: {cdn_error}")

        message = f"Applied {run.applied_count} fixes to {filename}."
        if run.applied:
            message += " Document changelog section updated."
        if invalidation_id:
            message += f" CDN cache purge started (ID: {invalidation_id})"

        return PatchResponse(
            success=True,
            message=message,
            filename=filename,
            invalidation_id=invalidation_id,
            applied_count=run.applied_count,
            outcomes=run.outcomes,
            warnings=warnings,
        )

    def _load_fix_list(self, session_id: str) -> FixList:
        if not session_id:
            raise InputError("sessionId is required")
        return self.store.read_fix_list(session_id)

    def _persist(self, filename: str, document: StoredDocument, content: str, session_id: str) -> str | None:
        """Conditionally write the patched body, then back up the prior one.

        No backup exists for a run whose write was refused.
        """
        written = self.store.write_document(
            filename,
            content,
            MARKDOWN_CONTENT_TYPE,
            expected_sha256=document.sha256,
        )
        logger.info("Wrote patched %s", filename)

        if content == document.body or not self.config.store.backup_before_write:
            return None
        try:
            self.store.backup_document(
                filename,
                document.body,
                session_id,
                replaced_sha256=written.sha256,
            )
        except (OSError, PatchError) as e:
            logger.warning("Could not back up prior version of %s: %s", filename, e)
            return f"Prior version of {filename} not backed up: {e}"
        return None

    def _render(self, filename: str, content: str) -> str | None:
        """Write the HTML rendition; return a warning instead of raising."""
        if not self.config.render.enabled:
            return None
        target = html_filename(filename)
        try:
            page = render_html(content, filename, self.config.render.stylesheet)
            self.store.write_document(target, page, HTML_CONTENT_TYPE)
        except Exception as e:
            logger.warning("Could not render %s: %s", target, e)
            return f"HTML rendition {target} not updated: {e}"
        logger.info("Generated and stored %s", target)
        return None

    def _invalidate_analysis_cache(self, session_id: str) -> None:
        invalidate_analysis_cache(self.store, session_id, self.config.session.analysis_artifacts)

    def _invalidate_cdn(self, filename: str) -> str | None:
        if self.invalidator is None:
            logger.info("No CDN configured; skipping invalidation for %s", filename)
            return None
        paths = invalidation_paths(filename, self.config.changelog.site_changelog_path)
        return self.invalidator.invalidate(paths)


def _settle(tasks: dict[str, Callable[[], Any]]) -> dict[str, tuple[Any, BaseException | None]]:
    """Run independent side effects concurrently; collect every result or error."""
    with ThreadPoolExecutor(max_workers=len(tasks)) as pool:
        futures = {name: pool.submit(task) for name, task in tasks.items()}

    settled: dict[str, tuple[Any, BaseException | None]] = {}
    for name, future in futures.items():
        error = future.exception()
        settled[name] = (None, error) if error is not None else (future.result(), None)
    return settled


def invalidate_analysis_cache(store: DocumentStore, session_id: str, artifacts: list[str]) -> None:
    """Delete a session's cached analysis results; failures are only logged."""
    for name in artifacts:
        try:
            store.delete_session_artifact(session_id, name)
        except Exception as e:
            logger.warning("Failed to delete analysis artifact %s/%s: %s", session_id, name, e)
    logger.info("Analysis cache invalidated for session %s", session_id)
