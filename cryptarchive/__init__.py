"""
cryptarchive: persist objects as encrypted, compressed single-file containers.

Features:

- ``CryptographicArchiveProcessor``: awaitable ``encrypt_object`` / ``decrypt_object``
  (plus path-to-path and blocking variants) with a closed error taxonomy.
- Encryption contexts bound to an algorithm profile (HKDF-SHA256 with
  AES-CTR+HMAC-SHA256 or XChaCha20-Poly1305, optional ECDSA P-256 signature)
  and a compression algorithm (deflate, lzma, optional zstd).
- Containers whose header carries the profile and compression, so decryption
  needs nothing but the key.
- Temporary staging files that are always cleaned up, even on failure.
"""

from .archivable import Archivable, ArchivableBytes, ArchivableJSON, ArchivableText
from .codec import CompressionAlgorithm
from .config import FileMode, OpenOptions, ProcessorConfiguration
from .context import EncryptionContext
from .errors import (
    CryptarchiveError,
    CryptographicProcessorError,
    InvalidConfiguration,
    UnableToCreateDecodeStream,
    UnableToCreateDecryptionContext,
    UnableToCreateEncryptionStream,
    UnableToCreateFileStream,
    UnableToGetHeaderField,
    ZeroDataSize,
)
from .keys import KeySize, SymmetricKey
from .processor import CryptographicArchiveProcessor
from .profiles import ArchiveProfile

__version__ = "0.1"

__all__ = [
    "Archivable",
    "ArchivableBytes",
    "ArchivableJSON",
    "ArchivableText",
    "ArchiveProfile",
    "CompressionAlgorithm",
    "CryptarchiveError",
    "CryptographicArchiveProcessor",
    "CryptographicProcessorError",
    "EncryptionContext",
    "FileMode",
    "InvalidConfiguration",
    "KeySize",
    "OpenOptions",
    "ProcessorConfiguration",
    "SymmetricKey",
    "UnableToCreateDecodeStream",
    "UnableToCreateDecryptionContext",
    "UnableToCreateEncryptionStream",
    "UnableToCreateFileStream",
    "UnableToGetHeaderField",
    "ZeroDataSize",
]
