"""OS keystore integration using keyring for optional adapter-key storage.

Keys are stored base64-encoded under a service/account pair so they can be
loaded back as an :class:`EncryptionKey` without a key file on disk. Use
this only for opt-in convenience storage; do not assume keyring provides
hardware-backed security on all platforms.
"""
import base64
import binascii
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from cipherstore.core.exceptions import InvalidKeyError

from .keys import EncryptionKey


def save_key(service: str, account: str, key: EncryptionKey) -> None:
    """Persist ``key`` in the OS keystore under (service, account)."""
    secret = base64.b64encode(key.material).decode("ascii")
    keyring.set_password(service, account, secret)


def load_key(service: str, account: str) -> Optional[EncryptionKey]:
    """Load a key from the OS keystore; returns None when nothing is stored."""
    secret = keyring.get_password(service, account)
    if secret is None:
        return None
    try:
        material = base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidKeyError(f"keystore entry {service}/{account} is not a valid key") from exc
    return EncryptionKey(material)


def delete_key(service: str, account: str) -> None:
    """Remove the key from the OS keystore; a missing entry is not an error."""
    try:
        keyring.delete_password(service, account)
    except PasswordDeleteError:
        pass


# class-name fragments of keyring backends that keep secrets unencrypted on disk
_INSECURE_MARKERS = ("Plaintext", "Uncrypted", "Simple", "File")
# backends that delegate to the platform's own secret store
_PLATFORM_MARKERS = ("Win", "Keychain", "SecretService", "KWallet")


def assess_keyring_backend() -> tuple[bool, str]:
    """Return (is_secure, message) describing the active keyring backend.

    The `keyring` package picks a backend per platform, so this is a
    name/priority heuristic rather than a guarantee.
    """
    try:
        backend = keyring.get_keyring()
    except KeyringError as e:
        return False, f"failed to get keyring backend: {e}"

    name = type(backend).__name__
    priority = getattr(backend, "priority", None)

    if any(marker in name for marker in _INSECURE_MARKERS):
        return False, f"insecure backend detected: {name}; keys would be stored unencrypted"
    if priority is not None and priority <= 0:
        return False, f"{name} is not usable here (priority={priority})"
    if any(marker in name for marker in _PLATFORM_MARKERS):
        return True, f"platform keystore {name} looks acceptable"
    return True, f"unrecognised backend {name}; treat with caution (priority={priority})"
