"""
Encrypt-on-write / decrypt-on-read coordination around the cipher engine.

:class:`StreamTransformer` is the only place that knows about the engine's
seek requirement. Every transform runs in at most two tiers:

1. hand the caller's stream straight to the engine;
2. if the engine reports ``CAPABILITY_UNSUPPORTED``, copy the remaining
   bytes into a seekable scratch buffer and run the engine once more
   against the copy.

The copy is always seekable, so there is never a third attempt. Any other
engine failure is translated into the package's exception types and the
partially written output is discarded.

Read policy
-----------
What happens when stored content is not an envelope for our key is a
deployment decision, selected with :class:`ReadPolicy`:

- ``STRICT``: raise :class:`InvalidMessageError`.
- ``LEGACY``: hand back the original bytes untouched, treating them as content
  written before encryption was enabled. Content that carries our version tag
  but fails to open is still raised; that is corruption or a wrong key, not
  legacy plaintext.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import BinaryIO

from cipherstore.core.exceptions import (
    DecryptionError,
    EncryptionError,
    InvalidMessageError,
)
from cipherstore.core.streams import (
    DEFAULT_SPOOL_SIZE,
    buffer_to_stream,
    can_rewind,
    copy_to_seekable,
    drain,
    new_scratch,
    rewind,
)

from . import crypto
from .crypto import DEFAULT_CHUNK_SIZE, EngineError, ErrorKind
from .keys import EncryptionKey
from .sniffer import looks_encrypted, looks_encrypted_bytes

logger = logging.getLogger(__name__)


class ReadPolicy(Enum):
    STRICT = "strict"
    LEGACY = "legacy"


class Direction(Enum):
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"


class StreamTransformer:
    """Runs the cipher engine over caller streams with a seekable-copy fallback."""

    def __init__(
        self,
        key: EncryptionKey,
        read_policy: ReadPolicy = ReadPolicy.STRICT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        spool_max_size: int = DEFAULT_SPOOL_SIZE,
    ):
        self._key = key
        self._read_policy = ReadPolicy(read_policy)
        self._chunk_size = chunk_size
        self._spool_max_size = spool_max_size

    @property
    def read_policy(self) -> ReadPolicy:
        return self._read_policy

    # ------------------------------------------------------------------
    # Stream transforms
    # ------------------------------------------------------------------

    def encrypt_stream(self, source: BinaryIO) -> BinaryIO:
        """
        Seal ``source`` and return a new stream holding the envelope.

        On success both ``source`` (when seekable) and the returned stream are
        at offset 0. The returned stream belongs to the caller. Raises
        :class:`EncryptionError` on failure; no output survives a failure.
        """
        return self._transform(source, Direction.ENCRYPT)

    def decrypt_stream(self, source: BinaryIO) -> BinaryIO:
        """
        Open the envelope in ``source`` and return a plaintext stream.

        Raises :class:`InvalidMessageError` when ``source`` is not an envelope
        for this key and :class:`DecryptionError` for any other failure.
        The read policy is not consulted here; see :meth:`open_plaintext`.
        """
        return self._transform(source, Direction.DECRYPT)

    def _transform(self, source: BinaryIO, direction: Direction) -> BinaryIO:
        try:
            return self._attempt(source, direction)
        except EngineError as exc:
            if exc.kind is not ErrorKind.CAPABILITY_UNSUPPORTED:
                raise self._translate(exc, direction) from exc

        logger.debug("input stream cannot seek; %s through a buffered copy", direction.value)
        copy = self._seekable_copy(source, direction)
        try:
            return self._attempt(copy, direction)
        except EngineError as exc:
            raise self._translate(exc, direction) from exc
        finally:
            copy.close()

    def _attempt(self, source: BinaryIO, direction: Direction) -> BinaryIO:
        output = new_scratch(self._spool_max_size)
        try:
            if direction is Direction.ENCRYPT:
                crypto.encrypt_stream(source, output, self._key, chunk_size=self._chunk_size)
            else:
                crypto.decrypt_stream(source, output, self._key)
        except EngineError as exc:
            output.close()
            if exc.kind is not ErrorKind.CAPABILITY_UNSUPPORTED:
                try:
                    rewind(source)
                except (OSError, ValueError):
                    logger.debug("input could not be rewound after a failed %s", direction.value)
            raise
        except Exception:
            output.close()
            raise

        rewind(source)
        output.seek(0)
        return output

    def _seekable_copy(self, source: BinaryIO, direction: Direction) -> BinaryIO:
        try:
            return copy_to_seekable(source, self._spool_max_size)
        except (OSError, ValueError) as exc:
            logger.warning("%s failed while buffering input: %s", direction.value, exc)
            error = EncryptionError if direction is Direction.ENCRYPT else DecryptionError
            raise error(f"I/O failure while buffering input: {exc}") from exc

    @staticmethod
    def _translate(exc: EngineError, direction: Direction) -> Exception:
        # invalid-message is routine for legacy content, so it stays at debug
        level = logging.DEBUG if exc.kind is ErrorKind.INVALID_MESSAGE else logging.WARNING
        logger.log(level, "%s failed (%s): %s", direction.value, exc.kind.value, exc)
        match (direction, exc.kind):
            case (Direction.DECRYPT, ErrorKind.INVALID_MESSAGE):
                return InvalidMessageError(str(exc))
            case (Direction.DECRYPT, _):
                return DecryptionError(str(exc))
            case _:
                return EncryptionError(str(exc))

    # ------------------------------------------------------------------
    # Byte helpers
    # ------------------------------------------------------------------

    def encrypt_bytes(self, data: bytes) -> bytes:
        with buffer_to_stream(data) as source, self.encrypt_stream(source) as sealed:
            return drain(sealed)

    def decrypt_bytes(self, data: bytes) -> bytes:
        with buffer_to_stream(data) as source, self.decrypt_stream(source) as opened:
            return drain(opened)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def open_plaintext(self, source: BinaryIO) -> BinaryIO:
        """
        Return a plaintext stream for stored content under the read policy.

        Under ``LEGACY`` the result may be ``source`` itself, rewound, or a
        seekable copy of it when ``source`` could not seek. Callers must
        check identity before closing ``source``.
        """
        if self._read_policy is ReadPolicy.STRICT:
            return self.decrypt_stream(source)

        candidate = source if can_rewind(source) else self._seekable_copy(source, Direction.DECRYPT)
        try:
            plaintext = self.decrypt_stream(candidate)
        except InvalidMessageError:
            if looks_encrypted(candidate):
                self._release(candidate, source)
                raise
            logger.info("content is not an envelope; returning it unchanged")
            rewind(candidate)
            return candidate
        except Exception:
            self._release(candidate, source)
            raise

        self._release(candidate, source)
        return plaintext

    def open_plaintext_bytes(self, data: bytes) -> bytes:
        """Byte-string form of :meth:`open_plaintext`."""
        try:
            return self.decrypt_bytes(data)
        except InvalidMessageError:
            if self._read_policy is ReadPolicy.STRICT or looks_encrypted_bytes(data):
                raise
            logger.info("content is not an envelope; returning it unchanged")
            return data

    @staticmethod
    def _release(candidate: BinaryIO, source: BinaryIO) -> None:
        if candidate is not source:
            candidate.close()
