"""Fernet helpers for storing face descriptors encrypted at rest."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

import numpy as np
from cryptography.fernet import Fernet, InvalidToken
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

BytesLike = Union[bytes, bytearray, memoryview]


def _coerce_key_bytes(key: BytesLike | str) -> bytes:
    if isinstance(key, str):
        return key.encode()
    return bytes(key)


@dataclass
class DescriptorCipher:
    """Lazily instantiate a Fernet cipher from ``FACE_DATA_ENCRYPTION_KEY``."""

    key_override: BytesLike | str | None = None
    setting_name: str = "FACE_DATA_ENCRYPTION_KEY"
    _cipher: Fernet | None = None

    def _resolve_key(self) -> bytes:
        key = self.key_override
        if key is None:
            key = getattr(settings, self.setting_name, None)
        if key is None:
            raise ImproperlyConfigured(f"{self.setting_name} is not configured.")

        key_bytes = _coerce_key_bytes(key)
        try:
            Fernet(key_bytes)
        except (TypeError, ValueError) as exc:
            raise ImproperlyConfigured(f"{self.setting_name} is invalid.") from exc
        return key_bytes

    def _get_cipher(self) -> Fernet:
        if self._cipher is None:
            self._cipher = Fernet(self._resolve_key())
        return self._cipher

    def encrypt_descriptor(self, descriptor: np.ndarray) -> bytes:
        if not isinstance(descriptor, np.ndarray):
            raise TypeError("encrypt_descriptor expects a numpy.ndarray")
        return self._get_cipher().encrypt(descriptor.astype(np.float64).ravel().tobytes())

    def decrypt_descriptor(self, token: BytesLike) -> np.ndarray:
        if not isinstance(token, (bytes, bytearray, memoryview)):
            raise TypeError("decrypt_descriptor expects a bytes-like object")
        decrypted = self._get_cipher().decrypt(bytes(token))
        return np.frombuffer(decrypted, dtype=np.float64).copy()


def encrypt_descriptor(descriptor: np.ndarray) -> bytes:
    """Encrypt a descriptor with the configured face-data key."""

    return DescriptorCipher().encrypt_descriptor(descriptor)


def decrypt_descriptor(token: BytesLike) -> np.ndarray:
    """Decrypt a descriptor produced by :func:`encrypt_descriptor`."""

    return DescriptorCipher().decrypt_descriptor(token)


__all__ = ["DescriptorCipher", "InvalidToken", "decrypt_descriptor", "encrypt_descriptor"]
