"""
EncryptionAdapter: transparent encryption in front of any storage backend.

Content written through the adapter is sealed before the backend sees it and
opened again on the way out. Everything that does not touch file content
(existence, deletion, moves, directories, visibility, timestamps, listing,
mimetype) is forwarded to the wrapped backend untouched, including its
exceptions. The adapter exposes the same methods as the backend, so it can be
dropped in wherever the raw backend was used.

Two things differ from the raw backend:
- ``size`` is the plaintext length, measured by decrypting
- ``get_metadata`` drops the backend's ``size`` (it is the ciphertext length)
"""

import logging
from dataclasses import replace
from typing import Any, BinaryIO, Dict, List, Optional

from .backend import Config, StorageBackend
from .config import AdapterSettings
from .streams import measure, read_exact
from ..security.crypto import VERSION_TAG_LEN
from ..security.keys import KeySource, resolve_key
from ..security.sniffer import looks_encrypted_bytes
from ..security.transform import ReadPolicy, StreamTransformer

logger = logging.getLogger(__name__)


class EncryptionAdapter:
    """Backend decorator that encrypts on write and decrypts on read."""

    def __init__(
        self,
        backend: StorageBackend,
        encryption_key: KeySource,
        read_policy: Optional[ReadPolicy] = None,
        settings: Optional[AdapterSettings] = None,
    ):
        """
        Args:
            backend: the storage backend to wrap
            encryption_key: an EncryptionKey, a key file path, or raw key bytes
            read_policy: overrides ``settings.read_policy`` when given
            settings: tunables; defaults to AdapterSettings()

        Raises InvalidKeyError if the key cannot be loaded.
        """
        settings = settings or AdapterSettings()
        if read_policy is not None:
            settings = replace(settings, read_policy=read_policy)

        self.backend = backend
        self.settings = settings
        self._transformer = StreamTransformer(
            resolve_key(encryption_key),
            read_policy=settings.read_policy,
            chunk_size=settings.chunk_size,
            spool_max_size=settings.spool_max_size,
        )
        logger.info(
            "encryption adapter ready over %s (read policy: %s)",
            type(backend).__name__,
            settings.read_policy.value,
        )

    @property
    def read_policy(self) -> ReadPolicy:
        return self._transformer.read_policy

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write(self, path: str, contents: bytes, config: Config = None) -> Dict[str, Any]:
        sealed = self._transformer.encrypt_bytes(contents)
        return self.backend.write(path, sealed, config)

    def write_stream(self, path: str, stream: BinaryIO, config: Config = None) -> Dict[str, Any]:
        with self._transformer.encrypt_stream(stream) as sealed:
            return self.backend.write_stream(path, sealed, config)

    def update(self, path: str, contents: bytes, config: Config = None) -> Dict[str, Any]:
        sealed = self._transformer.encrypt_bytes(contents)
        return self.backend.update(path, sealed, config)

    def update_stream(self, path: str, stream: BinaryIO, config: Config = None) -> Dict[str, Any]:
        with self._transformer.encrypt_stream(stream) as sealed:
            return self.backend.update_stream(path, sealed, config)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read(self, path: str) -> bytes:
        contents = self.backend.read(path)
        return self._transformer.open_plaintext_bytes(contents)

    def read_stream(self, path: str) -> BinaryIO:
        """Return a plaintext stream at offset 0; the caller must close it."""
        raw = self.backend.read_stream(path)
        try:
            plaintext = self._transformer.open_plaintext(raw)
        except Exception:
            raw.close()
            raise
        if plaintext is not raw:
            raw.close()
        return plaintext

    def size(self, path: str) -> int:
        with self.read_stream(path) as plaintext:
            return measure(plaintext)

    def get_metadata(self, path: str) -> Dict[str, Any]:
        metadata = dict(self.backend.get_metadata(path))
        metadata.pop("size", None)
        return metadata

    def mimetype(self, path: str) -> str:
        return self.backend.mimetype(path)

    # ------------------------------------------------------------------
    # Legacy content
    # ------------------------------------------------------------------

    def is_encrypted(self, path: str) -> bool:
        """True if the stored bytes at ``path`` start with the envelope version tag."""
        with self.backend.read_stream(path) as raw:
            return looks_encrypted_bytes(read_exact(raw, VERSION_TAG_LEN))

    def seal_legacy(self, path: str, config: Config = None) -> bool:
        """
        Encrypt ``path`` in place if it still holds legacy plaintext.

        Returns True when the file was rewritten, False when it was already an
        envelope. Lets a store be migrated one file at a time while reads run
        under ``ReadPolicy.LEGACY``.
        """
        if self.is_encrypted(path):
            return False
        with self.backend.read_stream(path) as raw, self._transformer.encrypt_stream(raw) as sealed:
            self.backend.update_stream(path, sealed, config)
        logger.info("sealed legacy content at %s", path)
        return True

    # ------------------------------------------------------------------
    # Passthrough
    # ------------------------------------------------------------------

    def exists(self, path: str) -> bool:
        return self.backend.exists(path)

    def delete(self, path: str) -> None:
        return self.backend.delete(path)

    def move(self, source: str, destination: str) -> None:
        return self.backend.move(source, destination)

    def copy(self, source: str, destination: str) -> None:
        return self.backend.copy(source, destination)

    def create_dir(self, dirname: str, config: Config = None) -> Dict[str, Any]:
        return self.backend.create_dir(dirname, config)

    def delete_dir(self, dirname: str) -> None:
        return self.backend.delete_dir(dirname)

    def get_visibility(self, path: str) -> str:
        return self.backend.get_visibility(path)

    def set_visibility(self, path: str, visibility: str) -> None:
        return self.backend.set_visibility(path, visibility)

    def last_modified(self, path: str) -> int:
        return self.backend.last_modified(path)

    def list_contents(self, directory: str = "", recursive: bool = False) -> List[Dict[str, Any]]:
        return self.backend.list_contents(directory, recursive)
