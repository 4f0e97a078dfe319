from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import Optional

from Cryptodome.PublicKey.ECC import EccKey

from .constants import (
    DEFAULT_CPU_THRESHOLD,
    DEFAULT_FILE_PERMISSIONS,
    DEFAULT_MAX_IN_MEMORY_FILE_SIZE,
    DEFAULT_PUMP_CHUNK_SIZE,
)
from .context import EncryptionContext
from .errors import InvalidConfiguration


class OpenOptions(IntFlag):
    NONE = 0
    CREATE = os.O_CREAT
    TRUNCATE = os.O_TRUNC
    EXCLUSIVE = os.O_EXCL
    APPEND = os.O_APPEND


class FileMode(Enum):
    READ_ONLY = os.O_RDONLY
    WRITE_ONLY = os.O_WRONLY
    READ_WRITE = os.O_RDWR

    @property
    def readable(self) -> bool:
        return self is not FileMode.WRITE_ONLY

    @property
    def writable(self) -> bool:
        return self is not FileMode.READ_ONLY


@dataclass(frozen=True)
class ProcessorConfiguration:
    """Settings shared by every call on one processor.

    ``encryption_context`` is a template: each call works on an unbound copy
    of it, so a configuration can be shared freely between concurrent calls.
    ``max_in_memory_file_size`` and ``cpu_threshold`` are advisory; payloads
    are always staged through a temporary file.
    """

    encryption_context: EncryptionContext = field(default_factory=EncryptionContext)
    file_permissions: int = DEFAULT_FILE_PERMISSIONS
    read_open_options: OpenOptions = OpenOptions.NONE
    write_open_options: OpenOptions = OpenOptions.CREATE | OpenOptions.TRUNCATE
    max_in_memory_file_size: int = DEFAULT_MAX_IN_MEMORY_FILE_SIZE
    cpu_threshold: int = DEFAULT_CPU_THRESHOLD
    signing_key: Optional[EccKey] = None
    chunk_size: int = DEFAULT_PUMP_CHUNK_SIZE

    def __post_init__(self):
        if not isinstance(self.encryption_context, EncryptionContext):
            raise InvalidConfiguration("encryption_context must be an EncryptionContext")
        if not (0 <= self.file_permissions <= 0o7777):
            raise InvalidConfiguration(f"file_permissions out of range: {self.file_permissions:#o}")
        if not (self.write_open_options & OpenOptions.CREATE):
            raise InvalidConfiguration("write_open_options must include CREATE")
        if self.max_in_memory_file_size < 0 or self.cpu_threshold < 0:
            raise InvalidConfiguration("size thresholds must be non-negative")
        if self.chunk_size <= 0:
            raise InvalidConfiguration("chunk_size must be positive")

    def context_for_call(self) -> EncryptionContext:
        return self.encryption_context.copy()

    def exceeds_in_memory_limit(self, size: int) -> bool:
        return size > self.max_in_memory_file_size
