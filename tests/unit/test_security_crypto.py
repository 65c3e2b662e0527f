"""
Unit tests for cipherstore.security.crypto (the envelope cipher engine).
"""

import io
import os
import struct

import pytest

from cipherstore.security.crypto import (
    FINAL_FLAG,
    HEADER_LEN,
    RECORD_PREFIX_LEN,
    TAG_LEN,
    VERSION_TAG,
    VERSION_TAG_LEN,
    EngineError,
    ErrorKind,
    decrypt_stream,
    encrypt_stream,
)

# ==============================================================================
# Helpers
# ==============================================================================

def seal(data: bytes, key, chunk_size: int = 64 * 1024) -> bytes:
    out = io.BytesIO()
    encrypt_stream(io.BytesIO(data), out, key, chunk_size=chunk_size)
    return out.getvalue()


def unseal(blob: bytes, key) -> bytes:
    out = io.BytesIO()
    decrypt_stream(io.BytesIO(blob), out, key)
    return out.getvalue()


def expect_kind(kind, fn, *args):
    with pytest.raises(EngineError) as excinfo:
        fn(*args)
    assert excinfo.value.kind is kind
    return excinfo.value

# ==============================================================================
# Tests: Round trips and layout
# ==============================================================================

@pytest.mark.parametrize("size", [0, 1, 4095, 4096, 4097, 250_000])
def test_encrypt_decrypt_roundtrip(key, size):
    data = os.urandom(size)
    assert unseal(seal(data, key, chunk_size=4096), key) == data


def test_envelope_starts_with_version_tag(key):
    blob = seal(b"contents", key)
    assert blob[:VERSION_TAG_LEN] == VERSION_TAG
    assert len(VERSION_TAG) == VERSION_TAG_LEN


def test_empty_plaintext_has_one_final_record(key):
    blob = seal(b"", key)
    assert len(blob) == HEADER_LEN + RECORD_PREFIX_LEN + TAG_LEN
    (raw_len,) = struct.unpack(">I", blob[HEADER_LEN:HEADER_LEN + RECORD_PREFIX_LEN])
    assert raw_len & FINAL_FLAG
    assert raw_len & ~FINAL_FLAG == TAG_LEN


def test_each_envelope_is_unique(key):
    assert seal(b"same", key) != seal(b"same", key)


def test_encrypt_starts_from_current_offset(key):
    source = io.BytesIO(b"skip-me|keep-me")
    source.seek(8)
    out = io.BytesIO()
    encrypt_stream(source, out, key)
    assert unseal(out.getvalue(), key) == b"keep-me"


def test_chunk_size_validation(key):
    with pytest.raises(ValueError):
        seal(b"data", key, chunk_size=0)

# ==============================================================================
# Tests: Capability errors
# ==============================================================================

def test_non_seekable_input_is_capability_error(key, non_seekable):
    expect_kind(
        ErrorKind.CAPABILITY_UNSUPPORTED,
        encrypt_stream, non_seekable(b"data"), io.BytesIO(), key,
    )
    expect_kind(
        ErrorKind.CAPABILITY_UNSUPPORTED,
        decrypt_stream, non_seekable(seal(b"data", key)), io.BytesIO(), key,
    )


def test_capability_error_writes_nothing(key, non_seekable):
    out = io.BytesIO()
    with pytest.raises(EngineError):
        encrypt_stream(non_seekable(b"data"), out, key)
    assert out.getvalue() == b""


def test_seek_failure_at_start_is_capability_error(key, unrewindable):
    """seekable() is only a claim; a failing seek() is checked before any output."""
    out = io.BytesIO()
    err = expect_kind(
        ErrorKind.CAPABILITY_UNSUPPORTED,
        encrypt_stream, unrewindable(b"hello"), out, key,
    )
    assert "cannot seek" in str(err)
    assert out.getvalue() == b""
    expect_kind(
        ErrorKind.CAPABILITY_UNSUPPORTED,
        decrypt_stream, unrewindable(seal(b"hello", key)), io.BytesIO(), key,
    )

# ==============================================================================
# Tests: Invalid messages
# ==============================================================================

def test_decrypt_plaintext_is_invalid_message(key):
    err = expect_kind(ErrorKind.INVALID_MESSAGE, unseal, b"just some legacy text", key)
    assert "not a cipherstore envelope" in str(err)


def test_decrypt_empty_input_is_invalid_message(key):
    expect_kind(ErrorKind.INVALID_MESSAGE, unseal, b"", key)


def test_decrypt_with_wrong_key(key, other_key):
    blob = seal(b"secret", key)
    expect_kind(ErrorKind.INVALID_MESSAGE, unseal, blob, other_key)


def test_decrypt_fails_on_tamper(key):
    blob = bytearray(seal(b"hello world" * 100, key))
    blob[HEADER_LEN + RECORD_PREFIX_LEN + 10] ^= 0x01
    expect_kind(ErrorKind.INVALID_MESSAGE, unseal, bytes(blob), key)


def test_decrypt_fails_on_header_tamper(key):
    blob = bytearray(seal(b"hello", key))
    blob[VERSION_TAG_LEN + 3] ^= 0xFF  # inside the salt
    expect_kind(ErrorKind.INVALID_MESSAGE, unseal, bytes(blob), key)


def test_decrypt_fails_on_truncated(key):
    blob = seal(os.urandom(10_000), key, chunk_size=1024)
    expect_kind(ErrorKind.INVALID_MESSAGE, unseal, blob[:-10], key)


def test_decrypt_fails_when_final_record_dropped(key):
    """Cutting the body at a record boundary must not pass as a shorter file."""
    chunk = 1024
    blob = seal(b"a" * (chunk * 3), key, chunk_size=chunk)
    record = RECORD_PREFIX_LEN + chunk + TAG_LEN
    truncated = blob[: HEADER_LEN + 2 * record]
    err = expect_kind(ErrorKind.INVALID_MESSAGE, unseal, truncated, key)
    assert "truncated" in str(err)


def test_decrypt_fails_on_forged_final_flag(key):
    chunk = 1024
    blob = bytearray(seal(b"a" * (chunk * 2), key, chunk_size=chunk))
    # mark the first record final and drop the rest
    (raw_len,) = struct.unpack(">I", blob[HEADER_LEN:HEADER_LEN + RECORD_PREFIX_LEN])
    blob[HEADER_LEN:HEADER_LEN + RECORD_PREFIX_LEN] = struct.pack(">I", raw_len | FINAL_FLAG)
    forged = bytes(blob[: HEADER_LEN + RECORD_PREFIX_LEN + chunk + TAG_LEN])
    expect_kind(ErrorKind.INVALID_MESSAGE, unseal, forged, key)


def test_decrypt_fails_on_trailing_data(key):
    blob = seal(b"payload", key) + b"extra"
    err = expect_kind(ErrorKind.INVALID_MESSAGE, unseal, blob, key)
    assert "after the final record" in str(err)


def test_decrypt_rejects_oversized_record_length(key):
    blob = bytearray(seal(b"payload", key))
    blob[HEADER_LEN:HEADER_LEN + RECORD_PREFIX_LEN] = struct.pack(">I", 0x7FFFFFFF)
    err = expect_kind(ErrorKind.INVALID_MESSAGE, unseal, bytes(blob), key)
    assert "out of range" in str(err)

# ==============================================================================
# Tests: Generic failures
# ==============================================================================

class FailingSink(io.BytesIO):
    def write(self, data):
        raise OSError("disk full")


def test_io_failure_on_output_is_generic(key):
    err = expect_kind(ErrorKind.GENERIC, encrypt_stream, io.BytesIO(b"data"), FailingSink(), key)
    assert "disk full" in str(err)


class GrowingStream(io.BytesIO):
    """Returns different content on the second pass over the data."""

    def __init__(self, data):
        super().__init__(data)
        self._passes = 0

    def seek(self, pos, whence=0):
        self._passes += 1
        if self._passes == 1:
            self.write(b"appended")
        return super().seek(pos, whence)


def test_input_modified_during_encryption_is_generic(key):
    err = expect_kind(ErrorKind.GENERIC, encrypt_stream, GrowingStream(b"data"), io.BytesIO(), key)
    assert "changed" in str(err)
