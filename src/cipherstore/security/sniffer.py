"""Tell envelopes produced by this package apart from opaque/legacy content."""

from cipherstore.core.streams import is_seekable, read_exact

from .crypto import VERSION_TAG, VERSION_TAG_LEN


def looks_encrypted_bytes(data: bytes) -> bool:
    return bytes(data[:VERSION_TAG_LEN]) == VERSION_TAG


def looks_encrypted(stream) -> bool:
    """
    Peek at the first ``VERSION_TAG_LEN`` bytes of ``stream``.

    The stream's offset is restored afterwards, so what the caller reads next
    is unchanged. A stream that cannot seek cannot be peeked without
    consuming it and is reported as not encrypted.
    """
    if not is_seekable(stream):
        return False
    offset = stream.tell()
    try:
        stream.seek(0)
        prefix = read_exact(stream, VERSION_TAG_LEN)
    finally:
        stream.seek(offset)
    return looks_encrypted_bytes(prefix)
