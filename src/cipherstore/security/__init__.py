"""Security helpers: keys, the envelope cipher engine and the stream transformer.

This package provides:
- 256-bit symmetric keys loaded from raw bytes, key files, passphrases or the OS keystore
- a chunked AES-GCM envelope format with a fixed-length version tag
- format sniffing for envelopes vs. legacy plaintext
- a stream transformer with a seekable-copy fallback and a configurable read policy
"""

from .kdf import KdfParams, generate_salt, derive_key_material
from .keys import (
    KEY_LEN,
    EncryptionKey,
    generate_key,
    load_key_file,
    derive_key_from_password,
    resolve_key,
)
from .crypto import (
    VERSION_TAG,
    VERSION_TAG_LEN,
    HEADER_LEN,
    EngineError,
    ErrorKind,
    encrypt_stream,
    decrypt_stream,
)
from .sniffer import looks_encrypted, looks_encrypted_bytes
from .transform import ReadPolicy, StreamTransformer
from .keystore import save_key, load_key, delete_key, assess_keyring_backend

__all__ = [
    "KdfParams",
    "generate_salt",
    "derive_key_material",
    "KEY_LEN",
    "EncryptionKey",
    "generate_key",
    "load_key_file",
    "derive_key_from_password",
    "resolve_key",
    "VERSION_TAG",
    "VERSION_TAG_LEN",
    "HEADER_LEN",
    "EngineError",
    "ErrorKind",
    "encrypt_stream",
    "decrypt_stream",
    "looks_encrypted",
    "looks_encrypted_bytes",
    "ReadPolicy",
    "StreamTransformer",
    "save_key",
    "load_key",
    "delete_key",
    "assess_keyring_backend",
]
