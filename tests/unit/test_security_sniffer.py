"""Unit tests for the envelope format sniffer."""

import io

from cipherstore.security.crypto import VERSION_TAG, encrypt_stream
from cipherstore.security.sniffer import looks_encrypted, looks_encrypted_bytes


def _sealed(key, data=b"payload"):
    out = io.BytesIO()
    encrypt_stream(io.BytesIO(data), out, key)
    return out.getvalue()


def test_bytes_detection(key):
    assert looks_encrypted_bytes(_sealed(key)) is True
    assert looks_encrypted_bytes(b"plain legacy text") is False
    assert looks_encrypted_bytes(b"") is False
    assert looks_encrypted_bytes(VERSION_TAG[:-1]) is False


def test_bytes_detection_accepts_bytearray():
    assert looks_encrypted_bytes(bytearray(VERSION_TAG + b"rest")) is True


def test_stream_peek_restores_offset(key):
    stream = io.BytesIO(_sealed(key))
    stream.seek(9)
    assert looks_encrypted(stream) is True
    assert stream.tell() == 9


def test_stream_peek_reads_from_start(key):
    """The tag is checked at offset 0 regardless of where the stream is."""
    stream = io.BytesIO(b"plaintext" + VERSION_TAG)
    stream.seek(9)
    assert looks_encrypted(stream) is False
    assert stream.tell() == 9


def test_short_stream():
    assert looks_encrypted(io.BytesIO(b"CS")) is False


def test_non_seekable_stream_is_not_consumed(key, non_seekable):
    stream = non_seekable(_sealed(key))
    assert looks_encrypted(stream) is False
    assert stream.read(len(VERSION_TAG)) == VERSION_TAG
