"""Streaming AEAD envelope used to seal content before it reaches a backend.

Header layout (binary, all big-endian):
- 4 bytes: magic b'CSE1'
- 1 byte: version (1)
- 1 byte: alg_id (1 = AESGCM)
- 16 bytes: salt for the per-envelope HKDF subkey
- 16 bytes: nonce_seed

The first ``VERSION_TAG_LEN`` bytes (magic, version, alg_id) are what the
format sniffer compares against.

Body: sequence of records: 4-byte big-endian length + ciphertext bytes. The top
bit of the length marks the final record. Every record is authenticated with
the header, its index and that final flag, so truncating, reordering or
extending the body makes decryption fail. An empty plaintext still produces
one (empty) final record.

Both directions need a seekable input: the input is fingerprinted in a first
pass, rewound, and the bytes actually consumed must match that fingerprint.
Content that changes underneath the engine is rejected rather than sealed or
released half-way.
"""
import hashlib
import hmac
import os
import struct
from enum import Enum
from typing import BinaryIO

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from cipherstore.core.streams import CHUNK_SIZE, is_seekable, read_exact

from .keys import EncryptionKey


MAGIC = b"CSE1"
VERSION = 1
ALG_ID_AESGCM = 1
VERSION_TAG = MAGIC + struct.pack("BB", VERSION, ALG_ID_AESGCM)
VERSION_TAG_LEN = len(VERSION_TAG)
SALT_LEN = 16
NONCE_SEED_LEN = 16
HEADER_LEN = VERSION_TAG_LEN + SALT_LEN + NONCE_SEED_LEN

TAG_LEN = 16
RECORD_PREFIX_LEN = 4
FINAL_FLAG = 0x80000000
DEFAULT_CHUNK_SIZE = 64 * 1024
MAX_CHUNK_SIZE = 16 * 1024 * 1024

_SUBKEY_INFO = b"cipherstore-envelope-v1"


class ErrorKind(Enum):
    # input lacks a capability the engine needs (seek/tell)
    CAPABILITY_UNSUPPORTED = "capability-unsupported"
    # input is not an envelope for this key
    INVALID_MESSAGE = "invalid-message"
    # anything else: I/O errors, input modified mid-transform
    GENERIC = "generic"


class EngineError(Exception):
    """Failure reported by the cipher engine, discriminated by ``kind``."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


def _derive_subkey(key: EncryptionKey, salt: bytes) -> bytes:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=salt, info=_SUBKEY_INFO)
    return hkdf.derive(key.material)


def _make_nonce(seed: bytes, chunk_index: int) -> bytes:
    # Produce a 12-byte nonce by hashing seed||chunk_index and taking first 12 bytes.
    h = hashlib.sha256()
    h.update(seed)
    h.update(chunk_index.to_bytes(8, "big"))
    return h.digest()[:12]


def _associated_data(header: bytes, chunk_index: int, final: bool) -> bytes:
    return header + struct.pack(">QB", chunk_index, 1 if final else 0)


def _begin(stream) -> int:
    """Return the input's current offset, or report that it cannot be rewound."""
    if not is_seekable(stream):
        raise EngineError(ErrorKind.CAPABILITY_UNSUPPORTED, "input stream is not seekable")
    try:
        start = stream.tell()
        # seekable() can claim more than the stream delivers
        stream.seek(start)
    except OSError as exc:
        raise EngineError(
            ErrorKind.CAPABILITY_UNSUPPORTED, "input stream cannot seek or report its position"
        ) from exc
    return start


def _fingerprint(stream, start: int) -> bytes:
    hasher = hashlib.blake2b(digest_size=32)
    while True:
        block = stream.read(CHUNK_SIZE)
        if not block:
            break
        hasher.update(block)
    stream.seek(start)
    return hasher.digest()


def _check_unchanged(expected: bytes, consumed) -> None:
    # runs after the sink is filled; callers discard the sink when this raises
    if not hmac.compare_digest(expected, consumed.digest()):
        raise EngineError(ErrorKind.GENERIC, "input changed while it was being processed")


def encrypt_stream(
    source: BinaryIO,
    sink: BinaryIO,
    key: EncryptionKey,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> None:
    """Seal everything from ``source``'s current offset to EOF into ``sink``."""
    if not 0 < chunk_size <= MAX_CHUNK_SIZE:
        raise ValueError(f"chunk_size must be between 1 and {MAX_CHUNK_SIZE}")
    start = _begin(source)

    try:
        expected = _fingerprint(source, start)
        consumed = hashlib.blake2b(digest_size=32)

        salt = os.urandom(SALT_LEN)
        nonce_seed = os.urandom(NONCE_SEED_LEN)
        header = VERSION_TAG + salt + nonce_seed
        sink.write(header)

        aead = AESGCM(_derive_subkey(key, salt))
        chunk_index = 0
        chunk = read_exact(source, chunk_size)
        while True:
            consumed.update(chunk)
            # a short chunk means EOF; a full one needs a look-ahead to know
            following = read_exact(source, chunk_size) if len(chunk) == chunk_size else b""
            final = not following
            nonce = _make_nonce(nonce_seed, chunk_index)
            ct = aead.encrypt(nonce, chunk, _associated_data(header, chunk_index, final))
            sink.write(struct.pack(">I", len(ct) | (FINAL_FLAG if final else 0)))
            sink.write(ct)
            if final:
                break
            chunk = following
            chunk_index += 1
    except OSError as exc:
        raise EngineError(ErrorKind.GENERIC, f"I/O failure while encrypting: {exc}") from exc

    _check_unchanged(expected, consumed)


def decrypt_stream(source: BinaryIO, sink: BinaryIO, key: EncryptionKey) -> None:
    """Open the envelope starting at ``source``'s current offset into ``sink``."""
    start = _begin(source)

    try:
        expected = _fingerprint(source, start)
        consumed = hashlib.blake2b(digest_size=32)

        header = read_exact(source, HEADER_LEN)
        consumed.update(header)
        if len(header) < HEADER_LEN or header[:VERSION_TAG_LEN] != VERSION_TAG:
            raise EngineError(ErrorKind.INVALID_MESSAGE, "input is not a cipherstore envelope")
        salt = header[VERSION_TAG_LEN:VERSION_TAG_LEN + SALT_LEN]
        nonce_seed = header[VERSION_TAG_LEN + SALT_LEN:]

        aead = AESGCM(_derive_subkey(key, salt))
        chunk_index = 0
        while True:
            prefix = read_exact(source, RECORD_PREFIX_LEN)
            consumed.update(prefix)
            if len(prefix) < RECORD_PREFIX_LEN:
                raise EngineError(ErrorKind.INVALID_MESSAGE, "envelope is truncated")
            (raw_len,) = struct.unpack(">I", prefix)
            final = bool(raw_len & FINAL_FLAG)
            ct_len = raw_len & ~FINAL_FLAG
            if not TAG_LEN <= ct_len <= MAX_CHUNK_SIZE + TAG_LEN:
                raise EngineError(ErrorKind.INVALID_MESSAGE, "record length out of range")

            ct = read_exact(source, ct_len)
            consumed.update(ct)
            if len(ct) != ct_len:
                raise EngineError(ErrorKind.INVALID_MESSAGE, "envelope is truncated")

            nonce = _make_nonce(nonce_seed, chunk_index)
            try:
                pt = aead.decrypt(nonce, ct, _associated_data(header, chunk_index, final))
            except InvalidTag as exc:
                raise EngineError(
                    ErrorKind.INVALID_MESSAGE, "envelope failed authentication"
                ) from exc
            sink.write(pt)
            if final:
                break
            chunk_index += 1

        if source.read(1):
            raise EngineError(ErrorKind.INVALID_MESSAGE, "unexpected data after the final record")
    except OSError as exc:
        raise EngineError(ErrorKind.GENERIC, f"I/O failure while decrypting: {exc}") from exc

    _check_unchanged(expected, consumed)
