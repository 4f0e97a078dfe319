from __future__ import annotations

import struct
from dataclasses import dataclass

from .codec import CompressionAlgorithm
from .constants import (
    CONTAINER_MAGIC,
    VERSION_MAJOR,
    VERSION_MINOR,
    FLAG_SIGNED,
    MIN_BLOCK_SIZE,
    MAX_BLOCK_SIZE,
    SALT_SIZE,
    HEADER_MAC_SIZE,
)
from .errors import HeaderError
from .profiles import ArchiveProfile


HEADER_STRUCT = struct.Struct("<8sHHHHII32s16s8sI")
# Fields (little endian):
# magic[8], ver_major u16, ver_minor u16, profile_id u16, compression_id u16,
# block_size u32, flags u32, salt[32], archive_uuid[16], reserved[8],
# header_crc32c u32 (over every preceding byte)
HEADER_SIZE = HEADER_STRUCT.size
# The header is followed by a HEADER_MAC_SIZE authenticator written by the
# encryption stream; parsing here never needs the key.
PREAMBLE_SIZE = HEADER_SIZE + HEADER_MAC_SIZE

_CRC32C_POLY = 0x82F63B78  # Castagnoli, reflected


def _crc32c_table():
    tbl = []
    for n in range(256):
        c = n
        for _ in range(8):
            c = (c >> 1) ^ _CRC32C_POLY if c & 1 else c >> 1
        tbl.append(c)
    return tuple(tbl)


_CRC32C_TABLE = _crc32c_table()


def crc32c(data: bytes, crc: int = 0) -> int:
    c = (~crc) & 0xFFFFFFFF
    for b in data:
        c = _CRC32C_TABLE[(c ^ b) & 0xFF] ^ (c >> 8)
    return (~c) & 0xFFFFFFFF


@dataclass(frozen=True)
class ContainerHeader:
    profile: ArchiveProfile
    compression: CompressionAlgorithm
    block_size: int
    flags: int
    salt: bytes
    archive_uuid: bytes
    version_major: int = VERSION_MAJOR
    version_minor: int = VERSION_MINOR

    @property
    def signed(self) -> bool:
        return bool(self.flags & FLAG_SIGNED)

    def pack(self) -> bytes:
        pre = HEADER_STRUCT.pack(
            CONTAINER_MAGIC,
            self.version_major,
            self.version_minor,
            int(self.profile),
            int(self.compression),
            self.block_size,
            self.flags,
            self.salt,
            self.archive_uuid,
            b"\x00" * 8,
            0,
        )
        return pre[:-4] + struct.pack("<I", crc32c(pre[:-4]))


def parse_header(raw: bytes) -> ContainerHeader:
    """Decode and sanity-check a header; raises HeaderError on any defect."""
    if len(raw) < HEADER_SIZE:
        raise HeaderError("Header too short")
    raw = raw[:HEADER_SIZE]
    (magic, vmaj, vmin, profile_id, codec_id, block_size, flags, salt, archive_uuid, _reserved, hdr_crc) = HEADER_STRUCT.unpack(raw)
    if magic != CONTAINER_MAGIC:
        raise HeaderError("Bad container magic")
    if crc32c(raw[:-4]) != hdr_crc:
        raise HeaderError("Header CRC mismatch")
    if vmaj != VERSION_MAJOR:
        raise HeaderError(f"Unsupported container version {vmaj}.{vmin}")
    try:
        profile = ArchiveProfile(profile_id)
    except ValueError:
        raise HeaderError(f"Unknown profile id {profile_id}") from None
    try:
        compression = CompressionAlgorithm(codec_id)
    except ValueError:
        raise HeaderError(f"Unknown compression id {codec_id}") from None
    if not (MIN_BLOCK_SIZE <= block_size <= MAX_BLOCK_SIZE):
        raise HeaderError(f"Block size {block_size} out of range")
    if bool(flags & FLAG_SIGNED) != profile.spec.signed:
        raise HeaderError("Signature flag disagrees with profile")
    if len(salt) != SALT_SIZE:
        raise HeaderError("Bad salt length")
    return ContainerHeader(
        profile=profile,
        compression=compression,
        block_size=block_size,
        flags=flags,
        salt=salt,
        archive_uuid=archive_uuid,
        version_major=vmaj,
        version_minor=vmin,
    )
