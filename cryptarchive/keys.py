from __future__ import annotations

import hmac
from enum import IntEnum
from typing import Union

from argon2.low_level import Type as ArgonType, hash_secret_raw
from Cryptodome.Random import get_random_bytes

from .errors import InvalidKeyError


# Argon2id parameters for password-derived keys (strong defaults; tests may lower them)
ARGON_TIME_COST = 3
ARGON_MEMORY_COST_KIB = 256 * 1024  # 256 MiB
ARGON_PARALLELISM = 4
MIN_SALT_SIZE = 16


class KeySize(IntEnum):
    """Supported symmetric key lengths, in bits."""

    BITS128 = 128
    BITS192 = 192
    BITS256 = 256

    @property
    def byte_count(self) -> int:
        return self.value // 8


class SymmetricKey:
    """Fixed-length secret key material.

    The pipeline never persists a key; callers own its lifetime. ``repr`` never
    reveals the material and equality is evaluated in constant time.
    """

    __slots__ = ("_material",)

    def __init__(self, material: Union[bytes, bytearray, memoryview]):
        material = bytes(material)
        if len(material) * 8 not in {s.value for s in KeySize}:
            raise InvalidKeyError(
                f"Symmetric key must be 128, 192 or 256 bits (got {len(material) * 8})"
            )
        self._material = material

    @classmethod
    def generate(cls, size: KeySize = KeySize.BITS256) -> "SymmetricKey":
        return cls(get_random_bytes(KeySize(size).byte_count))

    @classmethod
    def from_hex(cls, text: str) -> "SymmetricKey":
        try:
            raw = bytes.fromhex(text.strip())
        except ValueError as exc:
            raise InvalidKeyError("Key is not valid hexadecimal") from exc
        return cls(raw)

    @classmethod
    def derive_from_password(
        cls,
        password: str,
        salt: bytes,
        *,
        size: KeySize = KeySize.BITS256,
        time_cost: int = ARGON_TIME_COST,
        memory_cost_kib: int = ARGON_MEMORY_COST_KIB,
        parallelism: int = ARGON_PARALLELISM,
    ) -> "SymmetricKey":
        """Stretch ``password`` into a key with Argon2id.

        The same password, salt and cost parameters always yield the same key;
        storing the salt is the caller's business.
        """
        if len(salt) < MIN_SALT_SIZE:
            raise InvalidKeyError(f"Salt must be at least {MIN_SALT_SIZE} bytes")
        raw = hash_secret_raw(
            password.encode("utf-8"),
            salt,
            time_cost=time_cost,
            memory_cost=memory_cost_kib,
            parallelism=parallelism,
            hash_len=KeySize(size).byte_count,
            type=ArgonType.ID,
        )
        return cls(raw)

    @property
    def bit_count(self) -> int:
        return len(self._material) * 8

    def __len__(self) -> int:
        return len(self._material)

    def __bytes__(self) -> bytes:
        return self._material

    def hex(self) -> str:
        return self._material.hex()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SymmetricKey):
            return NotImplemented
        return hmac.compare_digest(self._material, other._material)

    def __hash__(self) -> int:
        return hash((SymmetricKey, len(self._material)))

    def __repr__(self) -> str:
        return f"SymmetricKey(bits={self.bit_count})"
