"""Read-only access to enrolled reference descriptors.

Descriptors are decrypted from :class:`~checkin.models.FaceEnrollment` and
kept in the Django cache as JSON so repeated check-ins for the same
identity do not hit the database and the cipher on every session.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Optional, Protocol

import numpy as np
from django.conf import settings
from django.core.cache import caches
from django.core.cache.backends.base import InvalidCacheBackendError

from .crypto import InvalidToken

if TYPE_CHECKING:
    from django.core.cache.backends.base import BaseCache

logger = logging.getLogger(__name__)

_REFERENCE_KEY_PREFIX = "checkin:reference"


class ReferenceStore(Protocol):
    def get_reference_descriptor(self, identity: str) -> Optional[np.ndarray]:
        ...


class StaticReferenceStore:
    """In-memory store, handy for kiosks provisioned with a fixed roster."""

    def __init__(self, descriptors: Optional[dict[str, np.ndarray]] = None) -> None:
        self._descriptors = {
            identity: np.asarray(vector, dtype=float) for identity, vector in (descriptors or {}).items()
        }

    def get_reference_descriptor(self, identity: str) -> Optional[np.ndarray]:
        return self._descriptors.get(identity)


def _get_cache() -> "BaseCache":
    try:
        return caches["checkin"]
    except InvalidCacheBackendError:
        return caches["default"]


def _reference_key(identity: str) -> str:
    return f"{_REFERENCE_KEY_PREFIX}:{identity}"


class DatabaseReferenceStore:
    """Decrypts enrolled descriptors from the database, with a cache in front."""

    def __init__(self, ttl: Optional[int] = None) -> None:
        self.ttl = ttl if ttl is not None else getattr(settings, "CHECKIN_REFERENCE_CACHE_TTL", 300)

    def get_reference_descriptor(self, identity: str) -> Optional[np.ndarray]:
        if not identity:
            return None

        cache = _get_cache()
        key = _reference_key(identity)
        cached = cache.get(key)
        if cached is not None:
            try:
                return np.array(json.loads(cached), dtype=float)
            except (json.JSONDecodeError, TypeError, ValueError) as exc:
                logger.warning("Discarding unreadable cached descriptor: %s", exc)
                cache.delete(key)

        from .models import FaceEnrollment

        enrollment = FaceEnrollment.objects.filter(identity=identity).first()
        if enrollment is None:
            logger.info(
                "No enrolled descriptor",
                extra={"event": "reference_missing", "identity": identity},
            )
            return None

        try:
            descriptor = enrollment.get_descriptor()
        except InvalidToken:
            logger.warning(
                "Stored descriptor could not be decrypted",
                extra={"event": "reference_invalid", "identity": identity},
            )
            return None

        cache.set(key, json.dumps(descriptor.tolist()), timeout=self.ttl)
        return descriptor

    def invalidate(self, identity: str) -> None:
        _get_cache().delete(_reference_key(identity))


__all__ = [
    "DatabaseReferenceStore",
    "ReferenceStore",
    "StaticReferenceStore",
]
