"""
Exceptions for the cipherstore package
Everything raised on purpose derives from CipherStoreError so callers have one catch-all
"""


class CipherStoreError(Exception):
    # general container for errors
    pass


class ConfigurationError(CipherStoreError):
    # raised when adapter settings are missing a value or hold an invalid one
    pass


class InvalidKeyError(CipherStoreError):
    # raised when key material is unreadable, malformed or the wrong length
    pass


class EncryptionError(CipherStoreError):
    # raised when plaintext could not be sealed; nothing is written to the backend
    pass


class DecryptionError(CipherStoreError):
    # raised when stored content could not be opened (I/O or engine failure)
    pass


class InvalidMessageError(DecryptionError):
    # raised when content is not an envelope for this key (bad format or tag)
    pass


class StorageError(CipherStoreError):
    # raised if the local storage backend fails in some way
    pass


class FileNotFoundError(StorageError):
    # raised if a file or directory is not found in storage
    pass


class FileAlreadyExistsError(StorageError):
    # raised when creating something where a file already exists
    pass


class InvalidPathError(StorageError):
    # raised when a path escapes the storage root
    pass
