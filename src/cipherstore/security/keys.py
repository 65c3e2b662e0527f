"""Symmetric key material for the encryption adapter.

An adapter holds exactly one :class:`EncryptionKey` for its whole lifetime.
Keys can come from three places, mirroring what the adapter constructor
accepts:

- an existing :class:`EncryptionKey`
- a key file on disk (base64 text as written by :meth:`EncryptionKey.to_key_file`,
  or exactly ``KEY_LEN`` raw bytes)
- raw key bytes handed over directly

Key bytes are never included in ``repr()``/``str()`` or in error messages.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import os
from pathlib import Path
from typing import Union

from cipherstore.core.exceptions import InvalidKeyError

from .kdf import KdfParams, derive_key_material

KEY_LEN = 32

KeySource = Union["EncryptionKey", bytes, bytearray, str, Path]


class EncryptionKey:
    """Immutable 256-bit secret used to seal and open envelopes."""

    __slots__ = ("_material",)

    def __init__(self, material: bytes):
        if not isinstance(material, (bytes, bytearray, memoryview)):
            raise InvalidKeyError("key material must be bytes")
        material = bytes(material)
        if len(material) != KEY_LEN:
            raise InvalidKeyError(
                f"key material must be {KEY_LEN} bytes, got {len(material)}"
            )
        self._material = material

    @property
    def material(self) -> bytes:
        return self._material

    def __repr__(self) -> str:
        return "EncryptionKey(<redacted>)"

    __str__ = __repr__

    def __eq__(self, other) -> bool:
        if not isinstance(other, EncryptionKey):
            return NotImplemented
        return hmac.compare_digest(self._material, other._material)

    __hash__ = None

    def to_key_file(self, path: Path | str) -> Path:
        """Write the key as base64 text readable only by the owner."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(base64.b64encode(self._material) + b"\n")
        return path


def generate_key() -> EncryptionKey:
    """Return a fresh random key."""
    return EncryptionKey(os.urandom(KEY_LEN))


def load_key_file(path: Path | str) -> EncryptionKey:
    """Load a key file written by :meth:`EncryptionKey.to_key_file` (or raw bytes)."""
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise InvalidKeyError(f"cannot read key file {path}") from exc

    if len(raw) == KEY_LEN:
        return EncryptionKey(raw)
    try:
        decoded = base64.b64decode(raw.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidKeyError(f"key file {path} does not contain a valid key") from exc
    return EncryptionKey(decoded)


def derive_key_from_password(
    password: bytes | str, salt: bytes, params: KdfParams = KdfParams()
) -> EncryptionKey:
    """Derive a key from a passphrase with Argon2id; store the salt yourself."""
    try:
        material = derive_key_material(password, salt, params, key_len=KEY_LEN)
    except ValueError as exc:
        raise InvalidKeyError(str(exc)) from exc
    return EncryptionKey(material)


def resolve_key(source: KeySource) -> EncryptionKey:
    """
    Turn any accepted key source into an :class:`EncryptionKey`.

    A ``str`` naming an existing file is read as a key file; any other
    ``str`` is taken as the raw key itself, UTF-8 encoded.
    """
    if isinstance(source, EncryptionKey):
        return source
    if isinstance(source, Path):
        return load_key_file(source)
    if isinstance(source, str):
        if os.path.isfile(source):
            return load_key_file(source)
        return EncryptionKey(source.encode("utf-8"))
    if isinstance(source, (bytes, bytearray, memoryview)):
        return EncryptionKey(source)
    raise InvalidKeyError(f"unsupported key source type: {type(source).__name__}")
