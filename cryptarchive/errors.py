from __future__ import annotations


class CryptarchiveError(Exception):
    """Base class for cryptarchive-specific errors."""


# Container/codec level
class HeaderError(CryptarchiveError):
    pass


class IntegrityError(CryptarchiveError):
    """Authentication failed: wrong key, tampered or truncated payload."""


class InvalidKeyError(CryptarchiveError):
    pass


class ContextBusyError(CryptarchiveError):
    pass


# Processor taxonomy
class CryptographicProcessorError(CryptarchiveError):
    """Errors surfaced by ``CryptographicArchiveProcessor``.

    Each subclass is one stable kind; ``kind`` is safe to log or compare and
    ``description`` is the human-readable text used when no message is given.
    """

    kind = "processorError"
    description = "Cryptographic processing failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.description)


class ZeroDataSize(CryptographicProcessorError):
    kind = "zeroDataSize"
    description = "Data size is zero"


class UnableToCreateFileStream(CryptographicProcessorError):
    kind = "unableToCreateFileStream"
    description = "Failed to create file stream"


class UnableToCreateDecryptionContext(CryptographicProcessorError):
    kind = "unableToCreateDecryptionContext"
    description = "Failed to create decryption context"


class UnableToCreateDecodeStream(CryptographicProcessorError):
    kind = "unableToCreateDecodeStream"
    description = "Failed to create decode stream"


class UnableToCreateEncryptionStream(CryptographicProcessorError):
    kind = "unableToCreateEncryptionStream"
    description = "Failed to create encryption stream"


class UnableToGetHeaderField(CryptographicProcessorError):
    kind = "unableToGetHeaderField"
    description = "Failed to get header field"


class InvalidConfiguration(CryptographicProcessorError):
    kind = "invalidConfiguration"
    description = "Invalid processor configuration"
