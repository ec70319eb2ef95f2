"""Storage backends for fix lists, documents and their backups.

Two "buckets" are modelled:

* the analysis bucket holds per-session artifacts, most importantly
  ``sessions/<session_id>/fixes.json``;
* the documents bucket holds the published documents keyed by filename.

:class:`FileSystemStore` maps both onto local directories.  Document writes
are atomic (temp file + ``os.replace``) and may carry a content-hash
precondition so that two concurrent runs against the same document cannot
silently overwrite each other.
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from docpatch.core.config import DocPatchConfig, resolve_dir
from docpatch.core.errors import (
    ConcurrentModificationError,
    InputError,
    ObjectNotFoundError,
    PersistenceError,
)
from docpatch.core.models import FixList

logger = logging.getLogger(__name__)

FIXES_FILENAME = "fixes.json"
MARKDOWN_CONTENT_TYPE = "text/markdown"
HTML_CONTENT_TYPE = "text/html"


def content_hash(body: str) -> str:
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@dataclass
class StoredDocument:
    """A document body as read from the store."""

    key: str
    body: str
    sha256: str
    content_type: str = MARKDOWN_CONTENT_TYPE


@dataclass
class BackupEntry:
    """A saved prior version of a document."""

    key: str
    session_id: str
    backup: Path
    timestamp: str
    run_id: str = ""
    replaced_sha256: str = ""


class DocumentStore(ABC):
    """Interface the patch engine needs from a storage backend."""

    @abstractmethod
    def read_fix_list(self, session_id: str) -> FixList:
        """Load and parse the fix list stored for ``session_id``."""

    @abstractmethod
    def read_document(self, key: str) -> StoredDocument:
        """Load a document by key; raise ObjectNotFoundError if absent."""

    @abstractmethod
    def write_document(
        self,
        key: str,
        body: str,
        content_type: str = MARKDOWN_CONTENT_TYPE,
        expected_sha256: str | None = None,
    ) -> StoredDocument:
        """Write a document, refusing if its current hash is not ``expected_sha256``."""

    @abstractmethod
    def delete_session_artifact(self, session_id: str, name: str) -> None:
        """Remove one cached analysis artifact of a session."""

    @abstractmethod
    def start_backup_run(self) -> str:
        """Open a new group of backups and return its id."""

    @abstractmethod
    def backup_document(
        self,
        key: str,
        body: str,
        session_id: str = "",
        run_id: str | None = None,
        replaced_sha256: str = "",
    ) -> BackupEntry:
        """Keep ``body`` as the prior version of ``key``.

        ``replaced_sha256`` is the hash of the version written over it, so a
        restore can refuse to clobber later edits.
        """

    @abstractmethod
    def list_backups(self) -> list[BackupEntry]:
        """All backups, newest run first."""

    @abstractmethod
    def read_backup(self, entry: BackupEntry) -> str:
        """Return the saved body of a backup entry."""

    @abstractmethod
    def discard_backup(self, entry: BackupEntry) -> None:
        """Forget a backup once it has been restored."""


def validate_key(key: str, what: str = "key") -> str:
    """Reject anything that is not a single plain path segment."""
    if not key or not key.strip():
        raise InputError(f"Empty {what}")
    if "/" in key or "\\" in key or key in (".", "..") or key.startswith("."):
        raise InputError(f"Invalid {what}: {key!r}")
    return key


class FileSystemStore(DocumentStore):
    """Directory-backed store for fix lists, documents and backups."""

    def __init__(self, analysis_dir: Path, documents_dir: Path):
        self.analysis_dir = Path(analysis_dir)
        self.documents_dir = Path(documents_dir)
        self.meta_dir = self.documents_dir / ".meta"
        self.backup_dir = self.documents_dir / ".backups"
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: DocPatchConfig, project_path: Path | None = None) -> FileSystemStore:
        project_path = project_path or Path.cwd()
        return cls(
            analysis_dir=resolve_dir(project_path, config.store.analysis_dir),
            documents_dir=resolve_dir(project_path, config.store.documents_dir),
        )

    # ------------------------------------------------------------------
    # Analysis bucket
    # ------------------------------------------------------------------

    def session_dir(self, session_id: str) -> Path:
        return self.analysis_dir / "sessions" / validate_key(session_id, "session id")

    def read_fix_list(self, session_id: str) -> FixList:
        path = self.session_dir(session_id) / FIXES_FILENAME
        if not path.exists():
            raise ObjectNotFoundError(f"Fixes not found for session {session_id}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise InputError(f"Fix list for session {session_id} is not valid JSON: {e}") from e
        return FixList.from_dict(data, session_id=session_id)

    def write_fix_list(self, fix_list: FixList) -> Path:
        """Store a fix list (used by fix producers and tests)."""
        session_dir = self.session_dir(fix_list.session_id)
        session_dir.mkdir(parents=True, exist_ok=True)
        path = session_dir / FIXES_FILENAME
        path.write_text(json.dumps(fix_list.to_dict(), indent=2), encoding="utf-8")
        return path

    def delete_session_artifact(self, session_id: str, name: str) -> None:
        path = self.session_dir(session_id) / validate_key(name, "artifact name")
        # Deleting an absent object succeeds, as it does on object stores.
        path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Documents bucket
    # ------------------------------------------------------------------

    def read_document(self, key: str) -> StoredDocument:
        path = self.documents_dir / validate_key(key, "document key")
        if not path.is_file():
            raise ObjectNotFoundError(f"Document not found: {key}")
        body = path.read_text(encoding="utf-8")
        meta = self._read_meta(key)
        return StoredDocument(
            key=key,
            body=body,
            sha256=content_hash(body),
            content_type=meta.get("contentType", MARKDOWN_CONTENT_TYPE),
        )

    def write_document(
        self,
        key: str,
        body: str,
        content_type: str = MARKDOWN_CONTENT_TYPE,
        expected_sha256: str | None = None,
    ) -> StoredDocument:
        path = self.documents_dir / validate_key(key, "document key")
        try:
            self.documents_dir.mkdir(parents=True, exist_ok=True)
            with self._locked():
                if expected_sha256 is not None:
                    current = content_hash(path.read_text(encoding="utf-8")) if path.is_file() else None
                    if current != expected_sha256:
                        raise ConcurrentModificationError(
                            f"{key} was modified by another writer; re-run the patch session"
                        )
                self._atomic_write(path, body)
                digest = content_hash(body)
                self._write_meta(key, {
                    "contentType": content_type,
                    "sha256": digest,
                    "updatedAt": datetime.now(timezone.utc).isoformat(),
                })
        except OSError as e:
            raise PersistenceError(f"Could not write {key}: {e}") from e

        logger.debug("Wrote %s (%s, %d chars)", key, content_type, len(body))
        return StoredDocument(key=key, body=body, sha256=digest, content_type=content_type)

    def content_type(self, key: str) -> str | None:
        return self._read_meta(validate_key(key, "document key")).get("contentType")

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def start_backup_run(self) -> str:
        """Reserve a backup run directory; ids sort oldest to newest."""
        base = datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")
        self.documents_dir.mkdir(parents=True, exist_ok=True)
        with self._locked():
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            run_id = base
            counter = 1
            while (self.backup_dir / run_id).exists():
                run_id = f"{base}-{counter:03d}"
                counter += 1
            (self.backup_dir / run_id).mkdir()
        return run_id

    def backup_document(
        self,
        key: str,
        body: str,
        session_id: str = "",
        run_id: str | None = None,
        replaced_sha256: str = "",
    ) -> BackupEntry:
        validate_key(key, "document key")
        run_id = run_id or self.start_backup_run()
        run_dir = self.backup_dir / validate_key(run_id, "backup run id")
        timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")

        self.documents_dir.mkdir(parents=True, exist_ok=True)
        with self._locked():
            run_dir.mkdir(parents=True, exist_ok=True)
            backup_file = run_dir / f"{key}.bak"
            counter = 1
            while backup_file.exists():
                backup_file = run_dir / f"{key}.{counter}.bak"
                counter += 1
            backup_file.write_text(body, encoding="utf-8")

            manifest = self._read_manifest(run_dir)
            manifest.append({
                "key": key,
                "session_id": session_id,
                "backup": backup_file.name,
                "timestamp": timestamp,
                "replaced_sha256": replaced_sha256,
            })
            self._write_manifest(run_dir, manifest)

        return BackupEntry(
            key=key,
            session_id=session_id,
            backup=backup_file,
            timestamp=timestamp,
            run_id=run_id,
            replaced_sha256=replaced_sha256,
        )

    def list_backups(self) -> list[BackupEntry]:
        entries: list[BackupEntry] = []
        if not self.backup_dir.exists():
            return entries

        for run_dir in sorted(self.backup_dir.iterdir(), reverse=True):
            if not run_dir.is_dir():
                continue
            # Newest write first within a run as well.
            for entry in reversed(self._read_manifest(run_dir)):
                entries.append(BackupEntry(
                    key=entry["key"],
                    session_id=entry.get("session_id", ""),
                    backup=run_dir / entry["backup"],
                    timestamp=entry["timestamp"],
                    run_id=run_dir.name,
                    replaced_sha256=entry.get("replaced_sha256", ""),
                ))

        return entries

    def read_backup(self, entry: BackupEntry) -> str:
        if not entry.backup.exists():
            raise ObjectNotFoundError(f"Backup file not found for {entry.key}")
        return entry.backup.read_text(encoding="utf-8")

    def discard_backup(self, entry: BackupEntry) -> None:
        run_dir = entry.backup.parent
        with self._locked():
            manifest = [m for m in self._read_manifest(run_dir) if m["backup"] != entry.backup.name]
            entry.backup.unlink(missing_ok=True)
            if manifest:
                self._write_manifest(run_dir, manifest)
            else:
                (run_dir / "manifest.json").unlink(missing_ok=True)
                if run_dir.exists() and not any(run_dir.iterdir()):
                    run_dir.rmdir()


    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Serialise writers in this process and across processes."""
        with self._lock:
            with open(self.documents_dir / ".lock", "a") as fd:
                fcntl.flock(fd.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(fd.fileno(), fcntl.LOCK_UN)

    def _atomic_write(self, path: Path, body: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(body)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _meta_path(self, key: str) -> Path:
        return self.meta_dir / f"{key}.json"

    def _read_meta(self, key: str) -> dict:
        path = self._meta_path(key)
        if not path.exists():
            return {}
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable metadata for %s", key)
            return {}

    def _write_meta(self, key: str, meta: dict) -> None:
        self.meta_dir.mkdir(parents=True, exist_ok=True)
        self._meta_path(key).write_text(json.dumps(meta, indent=2), encoding="utf-8")

    def _read_manifest(self, run_dir: Path) -> list[dict]:
        manifest_file = run_dir / "manifest.json"
        if not manifest_file.exists():
            return []
        return json.loads(manifest_file.read_text(encoding="utf-8"))

    def _write_manifest(self, run_dir: Path, manifest: list[dict]) -> None:
        (run_dir / "manifest.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
