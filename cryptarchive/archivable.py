from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Optional, Type, TypeVar


T = TypeVar("T", bound="Archivable")


class Archivable(ABC):
    """Contract for objects the processor can encrypt and restore.

    ``data`` returns the byte representation, or None when the object cannot
    be encoded. ``from_bytes`` rebuilds an instance and returns None for
    malformed input instead of raising.
    """

    @abstractmethod
    def data(self) -> Optional[bytes]:
        raise NotImplementedError

    @classmethod
    @abstractmethod
    def from_bytes(cls: Type[T], data: bytes) -> Optional[T]:
        raise NotImplementedError


class ArchivableBytes(Archivable):
    def __init__(self, payload: bytes):
        self.payload = bytes(payload)

    def data(self) -> Optional[bytes]:
        return self.payload

    @classmethod
    def from_bytes(cls, data: bytes) -> Optional["ArchivableBytes"]:
        return cls(data)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ArchivableBytes) and other.payload == self.payload

    def __repr__(self) -> str:
        return f"ArchivableBytes(<{len(self.payload)} bytes>)"


class ArchivableText(Archivable):
    def __init__(self, message: str):
        self.message = message

    def data(self) -> Optional[bytes]:
        try:
            return self.message.encode("utf-8")
        except UnicodeEncodeError:
            return None

    @classmethod
    def from_bytes(cls, data: bytes) -> Optional["ArchivableText"]:
        try:
            return cls(bytes(data).decode("utf-8"))
        except UnicodeDecodeError:
            return None

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ArchivableText) and other.message == self.message

    def __repr__(self) -> str:
        return f"ArchivableText({len(self.message)} chars)"


class ArchivableJSON(Archivable):
    """Any JSON-serialisable value, stored as compact UTF-8 JSON."""

    def __init__(self, value: Any):
        self.value = value

    def data(self) -> Optional[bytes]:
        try:
            return json.dumps(self.value, separators=(",", ":"), sort_keys=True).encode("utf-8")
        except (TypeError, ValueError):
            return None

    @classmethod
    def from_bytes(cls, data: bytes) -> Optional["ArchivableJSON"]:
        try:
            return cls(json.loads(bytes(data).decode("utf-8")))
        except (UnicodeDecodeError, ValueError):
            return None

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ArchivableJSON) and other.value == self.value

    def __repr__(self) -> str:
        return f"ArchivableJSON({type(self.value).__name__})"
