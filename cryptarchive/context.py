from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Union

from Cryptodome.Hash import SHA256
from Cryptodome.Protocol.KDF import HKDF
from Cryptodome.PublicKey.ECC import EccKey
from Cryptodome.Random import get_random_bytes
from Cryptodome.Signature import DSS

from .codec import CompressionAlgorithm
from .constants import (
    DEFAULT_BLOCK_SIZE,
    DEFAULT_CODEC_ID,
    DEFAULT_PROFILE_ID,
    DERIVED_KEY_SIZE,
    FLAG_SIGNED,
    KDF_INFO_PREFIX,
    MAX_BLOCK_SIZE,
    MIN_BLOCK_SIZE,
    SALT_SIZE,
    new_uuid_bytes,
)
from .errors import ContextBusyError, HeaderError, InvalidKeyError
from .header import HEADER_SIZE, ContainerHeader, parse_header
from .keys import SymmetricKey
from .profiles import ArchiveProfile

if TYPE_CHECKING:  # pragma: no cover
    from .streams import ByteStream


logger = logging.getLogger(__name__)

_P256_NAMES = {"NIST P-256", "p256", "P-256", "prime256v1", "secp256r1"}


@dataclass(frozen=True)
class DerivedKeys:
    header_mac_key: bytes
    payload_key: bytes
    payload_mac_key: bytes


class EncryptionContext:
    """Profile, compression algorithm and key material for one archive stream.

    A context is created either fresh (to encrypt) or from an existing
    container header (to decrypt, discovering the profile and compression that
    were used). It must be bound to a key with ``set_symmetric_key`` before a
    stream is opened, and it backs at most one open stream at a time.
    """

    def __init__(
        self,
        profile: ArchiveProfile = ArchiveProfile(DEFAULT_PROFILE_ID),
        compression: CompressionAlgorithm = CompressionAlgorithm(DEFAULT_CODEC_ID),
        *,
        block_size: int = DEFAULT_BLOCK_SIZE,
    ):
        self.profile = ArchiveProfile(profile)
        self.compression = CompressionAlgorithm(compression)
        if not (MIN_BLOCK_SIZE <= block_size <= MAX_BLOCK_SIZE):
            raise ValueError(f"block_size must be within [{MIN_BLOCK_SIZE}, {MAX_BLOCK_SIZE}]")
        self.block_size = block_size
        # Set only for contexts read back from a container
        self.header: Optional[ContainerHeader] = None
        self.header_bytes: Optional[bytes] = None
        self._key: Optional[SymmetricKey] = None
        self._signing_key: Optional[EccKey] = None
        self._busy = False
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return (
            f"EncryptionContext(profile={self.profile.name}, compression={self.compression.name}, "
            f"block_size={self.block_size}, key_bound={self._key is not None})"
        )

    # -------- construction from an existing container --------

    @classmethod
    def from_header(cls, raw: bytes) -> "EncryptionContext":
        header = parse_header(raw)
        if not header.compression.available:
            raise HeaderError(f"{header.compression.name.lower()} codec is not available")
        ctx = cls(header.profile, header.compression, block_size=header.block_size)
        ctx.header = header
        ctx.header_bytes = bytes(raw[:HEADER_SIZE])
        return ctx

    @classmethod
    def from_stream(cls, stream: "ByteStream") -> Optional["EncryptionContext"]:
        """Read a container header from ``stream`` without consuming it.

        The stream is rewound to where it started, so the same handle can be
        passed on to ``decryption_stream``. Returns None if the header cannot be
        read or parsed.
        """
        from .streams import read_exactly

        try:
            start = stream.tell()
            raw = read_exactly(stream, HEADER_SIZE)
            stream.seek(start)
            return cls.from_header(raw)
        except (HeaderError, OSError, ValueError, EOFError) as exc:
            logger.debug("Cannot derive context from stream %r: %s", stream, exc)
            return None

    # -------- keys --------

    def generate_symmetric_key(self) -> SymmetricKey:
        return SymmetricKey.generate(self.profile.spec.preferred_key_size)

    def set_symmetric_key(self, key: Union[SymmetricKey, bytes]) -> None:
        if not isinstance(key, SymmetricKey):
            key = SymmetricKey(key)
        if key.bit_count not in {int(s) for s in self.profile.spec.key_sizes}:
            raise InvalidKeyError(f"{key.bit_count}-bit key is not accepted by profile {self.profile.name}")
        self._key = key

    @property
    def has_symmetric_key(self) -> bool:
        return self._key is not None

    def set_signing_key(self, key: EccKey) -> None:
        """Bind an ECDSA P-256 key: a private key signs, a public key verifies."""
        if not self.profile.spec.signed:
            raise InvalidKeyError(f"profile {self.profile.name} does not carry signatures")
        if not isinstance(key, EccKey) or key.curve not in _P256_NAMES:
            raise InvalidKeyError("signing key must be an ECDSA P-256 key")
        self._signing_key = key

    @property
    def requires_signing_key(self) -> bool:
        return self.profile.spec.signed

    @property
    def can_sign(self) -> bool:
        return self._signing_key is not None and self._signing_key.has_private()

    @property
    def can_verify(self) -> bool:
        return self._signing_key is not None

    def signer(self):
        if not self.can_sign:
            raise InvalidKeyError("no private signing key bound")
        return DSS.new(self._signing_key, "fips-186-3", encoding="binary")

    def verifier(self):
        if not self.can_verify:
            raise InvalidKeyError("no verifying key bound")
        return DSS.new(self._signing_key.public_key(), "fips-186-3", encoding="binary")

    def derive_keys(self, salt: bytes) -> DerivedKeys:
        if self._key is None:
            raise InvalidKeyError("no symmetric key bound to context")
        info = KDF_INFO_PREFIX + int(self.profile).to_bytes(2, "big")
        header_mac_key, payload_key, payload_mac_key = HKDF(
            bytes(self._key), DERIVED_KEY_SIZE, salt, SHA256, num_keys=3, context=info
        )
        return DerivedKeys(header_mac_key, payload_key, payload_mac_key)

    def new_header(self) -> ContainerHeader:
        return ContainerHeader(
            profile=self.profile,
            compression=self.compression,
            block_size=self.block_size,
            flags=FLAG_SIGNED if self.profile.spec.signed else 0,
            salt=get_random_bytes(SALT_SIZE),
            archive_uuid=new_uuid_bytes(),
        )

    # -------- lifecycle --------

    def copy(self) -> "EncryptionContext":
        """Unbound twin with the same profile, compression, block size and signing key."""
        twin = EncryptionContext(self.profile, self.compression, block_size=self.block_size)
        twin._signing_key = self._signing_key
        return twin

    def acquire(self) -> None:
        with self._lock:
            if self._busy:
                raise ContextBusyError("context already backs an open stream")
            self._busy = True

    def release(self) -> None:
        with self._lock:
            self._busy = False
