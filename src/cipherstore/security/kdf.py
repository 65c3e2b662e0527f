import os
from dataclasses import dataclass
from typing import Dict

from argon2.low_level import Type, hash_secret_raw

MIN_SALT_LEN = 8


@dataclass(frozen=True)
class KdfParams:
    time_cost: int = 3
    memory_cost: int = 65536  # KiB
    parallelism: int = 1

    def to_dict(self) -> Dict:
        return {
            "algo": "argon2id",
            "time": self.time_cost,
            "memory": self.memory_cost,
            "parallelism": self.parallelism,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "KdfParams":
        return cls(
            time_cost=int(data.get("time", 3)),
            memory_cost=int(data.get("memory", 65536)),
            parallelism=int(data.get("parallelism", 1)),
        )


def generate_salt(length: int = 16) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def derive_key_material(
    password: bytes | str,
    salt: bytes,
    params: KdfParams = KdfParams(),
    key_len: int = 32,
) -> bytes:
    """
    Stretch a passphrase into raw key bytes using Argon2id.
    The same password, salt and params always yield the same bytes.
    """
    if isinstance(password, str):
        password = password.encode("utf-8")
    if len(salt) < MIN_SALT_LEN:
        raise ValueError(f"salt must be at least {MIN_SALT_LEN} bytes")

    return hash_secret_raw(
        secret=password,
        salt=salt,
        time_cost=params.time_cost,
        memory_cost=params.memory_cost,
        parallelism=params.parallelism,
        hash_len=key_len,
        type=Type.ID,
    )
