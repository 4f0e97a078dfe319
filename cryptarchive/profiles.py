from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import FrozenSet, Optional

from .constants import (
    PROFILE_HKDF_SHA256_AESCTR_HMAC__SYMMETRIC__NONE,
    PROFILE_HKDF_SHA256_AESCTR_HMAC__SYMMETRIC__ECDSA_P256,
    PROFILE_HKDF_SHA256_XCHACHA20POLY1305__SYMMETRIC__NONE,
)
from .keys import KeySize


class ArchiveProfile(IntEnum):
    """Named combinations of key derivation, cipher, authentication and signature."""

    HKDF_SHA256_AESCTR_HMAC__SYMMETRIC__NONE = PROFILE_HKDF_SHA256_AESCTR_HMAC__SYMMETRIC__NONE
    HKDF_SHA256_AESCTR_HMAC__SYMMETRIC__ECDSA_P256 = PROFILE_HKDF_SHA256_AESCTR_HMAC__SYMMETRIC__ECDSA_P256
    HKDF_SHA256_XCHACHA20POLY1305__SYMMETRIC__NONE = PROFILE_HKDF_SHA256_XCHACHA20POLY1305__SYMMETRIC__NONE

    @property
    def spec(self) -> "ProfileSpec":
        return _PROFILE_SPECS[self]


@dataclass(frozen=True)
class ProfileSpec:
    kdf: str
    cipher: str
    auth: str
    signature: Optional[str]
    key_sizes: FrozenSet[KeySize]
    preferred_key_size: KeySize

    @property
    def signed(self) -> bool:
        return self.signature is not None


_ALL_SIZES = frozenset(KeySize)

_PROFILE_SPECS = {
    ArchiveProfile.HKDF_SHA256_AESCTR_HMAC__SYMMETRIC__NONE: ProfileSpec(
        kdf="hkdf-sha256",
        cipher="aes-256-ctr",
        auth="hmac-sha256",
        signature=None,
        key_sizes=_ALL_SIZES,
        preferred_key_size=KeySize.BITS256,
    ),
    ArchiveProfile.HKDF_SHA256_AESCTR_HMAC__SYMMETRIC__ECDSA_P256: ProfileSpec(
        kdf="hkdf-sha256",
        cipher="aes-256-ctr",
        auth="hmac-sha256",
        signature="ecdsa-p256",
        key_sizes=_ALL_SIZES,
        preferred_key_size=KeySize.BITS256,
    ),
    # XChaCha20 is a 256-bit cipher; shorter master keys are refused outright.
    ArchiveProfile.HKDF_SHA256_XCHACHA20POLY1305__SYMMETRIC__NONE: ProfileSpec(
        kdf="hkdf-sha256",
        cipher="xchacha20",
        auth="poly1305",
        signature=None,
        key_sizes=frozenset({KeySize.BITS256}),
        preferred_key_size=KeySize.BITS256,
    ),
}

