"""CDN cache invalidation for patched documents."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

import requests

from docpatch.core.config import CdnConfig
from docpatch.core.errors import InvalidationError
from docpatch.patch.render import html_filename

logger = logging.getLogger(__name__)


def invalidation_paths(filename: str, site_changelog_path: str = "/CHANGELOG.md") -> list[str]:
    """The three edge paths affected by patching ``filename``."""
    return [f"/{filename}", site_changelog_path, f"/{html_filename(filename)}"]


class CacheInvalidator(ABC):
    """Something that can purge paths from a content-delivery cache."""

    @abstractmethod
    def invalidate(self, paths: list[str]) -> str:
        """Start an invalidation and return its identifier."""


class HttpCacheInvalidator(CacheInvalidator):
    """Talks to a CDN invalidation endpoint over HTTP.

    ``POST {endpoint}/distributions/{distribution_id}/invalidations`` with a
    JSON body ``{"paths": [...], "callerReference": "..."}``.  The reply must
    carry the invalidation id either as ``id`` or as ``invalidation.id``.
    """

    def __init__(
        self,
        endpoint: str,
        distribution_id: str,
        token: str = "",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.distribution_id = distribution_id
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_config(cls, config: CdnConfig) -> HttpCacheInvalidator | None:
        """Build an invalidator, or None when no CDN is configured."""
        if not config.enabled:
            return None
        return cls(
            endpoint=config.endpoint,
            distribution_id=config.distribution_id,
            token=config.token,
            timeout=config.timeout,
        )

    @property
    def url(self) -> str:
        return f"{self.endpoint}/distributions/{self.distribution_id}/invalidations"

    def invalidate(self, paths: list[str]) -> str:
        payload = {
            "paths": list(paths),
            "callerReference": f"invalidate-{int(time.time() * 1000)}",
        }
        logger.info("Creating invalidation for %s paths %s", self.distribution_id, paths)

        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise InvalidationError(f"CDN invalidation failed: {e}") from e
        except ValueError as e:
            raise InvalidationError("CDN invalidation returned a non-JSON reply") from e

        if not isinstance(data, dict):
            raise InvalidationError("CDN invalidation reply is not a JSON object")
        invalidation_id = data.get("id") or (data.get("invalidation") or {}).get("id")
        if not invalidation_id:
            raise InvalidationError("CDN invalidation reply has no id")
        return str(invalidation_id)
