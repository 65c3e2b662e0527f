"""Shared fixtures for the cipherstore test suite."""

import io

import pytest

from cipherstore.security.keys import generate_key


class NonSeekableStream(io.RawIOBase):
    """Readable stream that refuses seek/tell, like a socket or HTTP body."""

    def __init__(self, data: bytes):
        self._inner = io.BytesIO(data)

    def readable(self):
        return True

    def seekable(self):
        return False

    def readinto(self, buffer):
        chunk = self._inner.read(len(buffer))
        buffer[: len(chunk)] = chunk
        return len(chunk)

    def seek(self, *args):
        raise io.UnsupportedOperation("seek")

    def tell(self):
        raise io.UnsupportedOperation("tell")


class UnrewindableStream(io.BytesIO):
    """Claims to be seekable and reports its position, but seek() fails."""

    def seekable(self):
        return True

    def seek(self, *args):
        raise io.UnsupportedOperation("seek")


@pytest.fixture
def key():
    return generate_key()


@pytest.fixture
def other_key():
    return generate_key()


@pytest.fixture
def non_seekable():
    """Factory for streams that cannot seek."""
    return NonSeekableStream


@pytest.fixture
def unrewindable():
    """Factory for streams whose seekable() is True but cannot seek."""
    return UnrewindableStream
