"""Exception hierarchy for patch runs."""

from __future__ import annotations


class PatchError(Exception):
    """Base class for every error raised by docpatch."""

    status_code = 500


class InputError(PatchError):
    """The request or the stored input it points at is unusable."""

    status_code = 400


class ObjectNotFoundError(InputError):
    """A fix list or document does not exist in the store."""

    status_code = 404


class PersistenceError(PatchError):
    """The patched document could not be written back."""


class ConcurrentModificationError(PersistenceError):
    """The stored document changed between read and write."""


class RenderError(PatchError):
    """The HTML rendition could not be produced or stored."""


class InvalidationError(PatchError):
    """The CDN refused or failed the invalidation request."""
