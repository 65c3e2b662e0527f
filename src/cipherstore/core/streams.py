"""Utilities for moving bytes between flat buffers and stream handles.

The cipher engine only works against streams it can rewind. Backends and
callers hand us whatever they have (open files, sockets, HTTP bodies), so
these helpers probe what a stream can do and produce seekable copies when
it cannot.
"""

from __future__ import annotations

import io
import shutil
import tempfile
from typing import BinaryIO, Optional


CHUNK_SIZE = 65536  # 64KB
# Scratch buffers stay in memory up to this size, then spill to a temp file.
DEFAULT_SPOOL_SIZE = 2 * 1024 * 1024


def is_seekable(stream) -> bool:
    """Return True when ``stream`` can report and change its position."""
    probe = getattr(stream, "seekable", None)
    if callable(probe):
        try:
            return bool(probe())
        except (OSError, ValueError):
            return False
    # SpooledTemporaryFile only grew seekable() in Python 3.11
    try:
        stream.tell()
    except (AttributeError, OSError, ValueError):
        return False
    return True


def can_rewind(stream) -> bool:
    """Return True when ``stream`` can actually seek, not just claim to."""
    if not is_seekable(stream):
        return False
    try:
        stream.seek(stream.tell())
    except (OSError, ValueError):
        return False
    return True


def tell_or_none(stream) -> Optional[int]:
    """Return the current offset of ``stream``, or None if it has none."""
    if not is_seekable(stream):
        return None
    try:
        return stream.tell()
    except OSError:
        return None


def rewind(stream) -> None:
    """Move ``stream`` back to offset 0 if it supports seeking."""
    if is_seekable(stream):
        stream.seek(0)


def read_exact(stream, size: int) -> bytes:
    """Read up to ``size`` bytes, looping over short reads until EOF."""
    parts = []
    remaining = size
    while remaining > 0:
        block = stream.read(remaining)
        if not block:
            break
        parts.append(block)
        remaining -= len(block)
    return b"".join(parts)


def new_scratch(max_size: int = DEFAULT_SPOOL_SIZE) -> BinaryIO:
    """Open an empty seekable scratch buffer owned by the caller."""
    return tempfile.SpooledTemporaryFile(max_size=max_size, mode="w+b")


def buffer_to_stream(data: bytes) -> BinaryIO:
    """Wrap ``data`` in an in-memory stream positioned at offset 0."""
    stream = io.BytesIO()
    stream.write(data)
    stream.seek(0)
    return stream


def copy_to_seekable(stream, max_size: int = DEFAULT_SPOOL_SIZE) -> BinaryIO:
    """
    Copy the remaining bytes of ``stream`` into a new seekable buffer.

    The copy holds everything from the stream's current offset to EOF and is
    returned positioned at 0. When ``stream`` itself can seek, its offset is
    restored afterwards so the caller's view of it is unchanged. A stream
    that cannot seek is necessarily consumed.
    """
    offset = tell_or_none(stream) if can_rewind(stream) else None
    copy = new_scratch(max_size)
    try:
        shutil.copyfileobj(stream, copy, CHUNK_SIZE)
        copy.seek(0)
    except Exception:
        copy.close()
        raise
    if offset is not None:
        stream.seek(offset)
    return copy


def drain(stream) -> bytes:
    """Read ``stream`` from its current offset to EOF."""
    parts = []
    while True:
        block = stream.read(CHUNK_SIZE)
        if not block:
            break
        parts.append(block)
    return b"".join(parts)


def measure(stream) -> int:
    """Count the bytes left in ``stream`` without keeping them around."""
    total = 0
    while True:
        block = stream.read(CHUNK_SIZE)
        if not block:
            break
        total += len(block)
    return total
