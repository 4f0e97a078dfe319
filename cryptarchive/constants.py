import uuid


# Magic and version
CONTAINER_MAGIC = b"CRYPTAR\x00"  # 8 bytes: "CRYPTAR\0"

VERSION_MAJOR = 1
VERSION_MINOR = 0

# Header flags
FLAG_SIGNED = 1 << 0

# Segment flags
SEG_FINAL = 1 << 0
SEG_COMPRESSED = 1 << 1


# Profile IDs (0 reserved)
PROFILE_HKDF_SHA256_AESCTR_HMAC__SYMMETRIC__NONE = 1
PROFILE_HKDF_SHA256_AESCTR_HMAC__SYMMETRIC__ECDSA_P256 = 2
PROFILE_HKDF_SHA256_XCHACHA20POLY1305__SYMMETRIC__NONE = 3

# Codec IDs (0=none, 1=deflate/zlib, 2=zstd, 3=lzma)
CODEC_NONE = 0
CODEC_DEFLATE = 1
CODEC_ZSTD = 2
CODEC_LZMA = 3


DEFAULT_BLOCK_SIZE = 1_048_576  # 1 MiB
MIN_BLOCK_SIZE = 4096
MAX_BLOCK_SIZE = 64 * 1_048_576
DEFAULT_PUMP_CHUNK_SIZE = 65536

DEFAULT_PROFILE_ID = PROFILE_HKDF_SHA256_AESCTR_HMAC__SYMMETRIC__NONE
DEFAULT_CODEC_ID = CODEC_DEFLATE

DEFAULT_FILE_PERMISSIONS = 0o644
DEFAULT_MAX_IN_MEMORY_FILE_SIZE = 10_000_000
DEFAULT_CPU_THRESHOLD = 100_000_000

# Key schedule
KDF_INFO_PREFIX = b"cryptarchive/v1"
SALT_SIZE = 32
DERIVED_KEY_SIZE = 32
HEADER_MAC_SIZE = 32
SIGNATURE_SIZE = 64

# Staging
TMPDIR_ENV = "CRYPTARCHIVE_TMPDIR"
STAGING_DIRNAME = "cryptarchive"
STAGING_DIR_PERMISSIONS = 0o700
STAGING_FILE_PERMISSIONS = 0o600


def new_uuid_bytes() -> bytes:
    return uuid.uuid4().bytes
