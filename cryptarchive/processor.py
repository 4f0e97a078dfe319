from __future__ import annotations

import asyncio
import functools
import logging
import os
from concurrent.futures import Executor
from contextlib import ExitStack
from typing import Optional, Type, TypeVar, Union

from . import staging
from .archivable import Archivable, ArchivableBytes
from .config import FileMode, OpenOptions, ProcessorConfiguration
from .constants import STAGING_FILE_PERMISSIONS
from .context import EncryptionContext
from .errors import (
    IntegrityError,
    InvalidConfiguration,
    InvalidKeyError,
    UnableToCreateDecodeStream,
    UnableToCreateDecryptionContext,
    UnableToCreateEncryptionStream,
    UnableToCreateFileStream,
    UnableToGetHeaderField,
    ZeroDataSize,
)
from .keys import SymmetricKey
from .streams import decryption_stream, encryption_stream, file_stream, process


logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Archivable)
KeyLike = Union[SymmetricKey, bytes]


class CryptographicArchiveProcessor:
    """Encrypt objects into single-file containers and restore them.

    The public coroutines run the blocking pipeline in ``executor`` (the loop's
    default executor when None) and are awaited as one unit of work. There is
    no cancellation: cancelling the awaiting task leaves the worker running to
    completion or failure, and a destination it was writing stays as is.

    Every failure surfaces as one ``CryptographicProcessorError`` kind. Stream
    construction is checked in a fixed order (file stream, then context, then
    crypto stream) so the error always names the earliest failing stage.
    Staging files are removed on every path; cleanup failures are logged and
    never replace the original error.
    """

    def __init__(self, configuration: Optional[ProcessorConfiguration] = None, *, executor: Optional[Executor] = None):
        self.configuration = configuration if configuration is not None else ProcessorConfiguration()
        self._executor = executor

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args))

    # -------- async API --------

    async def encrypt_object(self, obj: Archivable, key: KeyLike, destination_path: str) -> bool:
        """Encrypt ``obj`` under ``key`` into ``destination_path`` (created or overwritten)."""
        return await self._run(self.encrypt_object_sync, obj, key, destination_path)

    async def decrypt_object(self, source_path: str, key: KeyLike, cls: Type[T] = ArchivableBytes) -> T:
        """Decrypt the container at ``source_path`` and rebuild it as ``cls``."""
        return await self._run(self.decrypt_object_sync, source_path, key, cls)

    async def encrypt_file(self, source_path: str, key: KeyLike, destination_path: str) -> bool:
        return await self._run(self.encrypt_file_sync, source_path, key, destination_path)

    async def decrypt_file(self, source_path: str, key: KeyLike, destination_path: str) -> int:
        return await self._run(self.decrypt_file_sync, source_path, key, destination_path)

    # -------- blocking pipeline --------

    def encrypt_object_sync(self, obj: Archivable, key: KeyLike, destination_path: str) -> bool:
        data = obj.data()
        if not data:
            raise ZeroDataSize()
        if self.configuration.exceeds_in_memory_limit(len(data)):
            logger.info(
                "Payload of %d bytes is above the in-memory limit (%d)",
                len(data),
                self.configuration.max_in_memory_file_size,
            )
        context = self._encryption_context(key)
        try:
            staged = staging.stage_bytes(data)
        except OSError as exc:
            raise UnableToCreateFileStream(f"Failed to stage plaintext: {exc}") from exc
        try:
            self._encrypt_path(staged, context, destination_path)
        finally:
            staging.discard(staged)
        return True

    def encrypt_file_sync(self, source_path: str, key: KeyLike, destination_path: str) -> bool:
        try:
            size = os.path.getsize(source_path)
        except OSError as exc:
            raise UnableToCreateFileStream(f"Failed to create file stream for {source_path}") from exc
        if size == 0:
            raise ZeroDataSize()
        _refuse_same_file(source_path, destination_path)
        context = self._encryption_context(key)
        self._encrypt_path(source_path, context, destination_path)
        return True

    def decrypt_object_sync(self, source_path: str, key: KeyLike, cls: Type[T] = ArchivableBytes) -> T:
        temporary_path = staging.create_temporary_file_path()
        try:
            self._decrypt_path(
                source_path,
                key,
                temporary_path,
                OpenOptions.CREATE | OpenOptions.EXCLUSIVE,
                STAGING_FILE_PERMISSIONS,
            )
            with open(temporary_path, "rb") as fh:
                decrypted = fh.read()
        finally:
            staging.discard(temporary_path)
        obj = cls.from_bytes(decrypted)
        if obj is None:
            raise UnableToGetHeaderField(f"Decrypted payload is not a valid {cls.__name__}")
        return obj

    def decrypt_file_sync(self, source_path: str, key: KeyLike, destination_path: str) -> int:
        _refuse_same_file(source_path, destination_path)
        cfg = self.configuration
        return self._decrypt_path(source_path, key, destination_path, cfg.write_open_options, cfg.file_permissions)

    # -------- internals --------

    def _encryption_context(self, key: KeyLike) -> EncryptionContext:
        context = self.configuration.context_for_call()
        try:
            context.set_symmetric_key(key)
            if context.requires_signing_key:
                if self.configuration.signing_key is not None:
                    context.set_signing_key(self.configuration.signing_key)
                if not context.can_sign:
                    raise InvalidKeyError(f"profile {context.profile.name} requires a private signing key")
        except InvalidKeyError as exc:
            raise InvalidConfiguration(str(exc)) from exc
        return context

    def _bind_decryption_keys(self, context: EncryptionContext, key: KeyLike) -> None:
        try:
            context.set_symmetric_key(key)
            if context.requires_signing_key:
                if self.configuration.signing_key is None:
                    raise InvalidKeyError(f"container profile {context.profile.name} needs a verifying key")
                context.set_signing_key(self.configuration.signing_key)
        except InvalidKeyError as exc:
            raise InvalidConfiguration(str(exc)) from exc

    def _encrypt_path(self, source_path: str, context: EncryptionContext, destination_path: str) -> int:
        cfg = self.configuration
        with ExitStack() as stack:
            # Entered in wrapping order; ExitStack unwinds in reverse, so the
            # encryption stream finalises before the destination file closes.
            destination = file_stream(destination_path, FileMode.WRITE_ONLY, cfg.write_open_options, cfg.file_permissions)
            if destination is None:
                raise UnableToCreateFileStream(f"Failed to create file stream for {destination_path}")
            stack.enter_context(destination)

            source = file_stream(source_path, FileMode.READ_ONLY, cfg.read_open_options, cfg.file_permissions)
            if source is None:
                raise UnableToCreateFileStream(f"Failed to create file stream for {source_path}")
            stack.enter_context(source)

            encryptor = encryption_stream(destination, context)
            if encryptor is None:
                raise UnableToCreateEncryptionStream()
            stack.enter_context(encryptor)

            moved = process(source, encryptor, chunk_size=cfg.chunk_size)
        logger.info(
            "Encrypted %d bytes into %s (%s, %s)",
            moved,
            destination_path,
            context.profile.name,
            context.compression.name,
        )
        return moved

    def _decrypt_path(
        self,
        source_path: str,
        key: KeyLike,
        destination_path: str,
        write_options: OpenOptions,
        permissions: int,
    ) -> int:
        cfg = self.configuration
        destination_opened = False
        try:
            with ExitStack() as stack:
                source = file_stream(source_path, FileMode.READ_ONLY, cfg.read_open_options, cfg.file_permissions)
                if source is None:
                    raise UnableToCreateFileStream(f"Failed to create file stream for {source_path}")
                stack.enter_context(source)

                context = EncryptionContext.from_stream(source)
                if context is None:
                    raise UnableToCreateDecryptionContext()
                self._bind_decryption_keys(context, key)

                decryptor = decryption_stream(source, context)
                if decryptor is None:
                    raise UnableToCreateDecodeStream()
                stack.enter_context(decryptor)

                destination = file_stream(destination_path, FileMode.WRITE_ONLY, write_options, permissions)
                if destination is None:
                    raise UnableToCreateFileStream(f"Failed to create file stream for {destination_path}")
                stack.enter_context(destination)
                destination_opened = True

                try:
                    moved = process(decryptor, destination, chunk_size=cfg.chunk_size)
                except IntegrityError as exc:
                    raise UnableToCreateDecodeStream() from exc
        except BaseException:
            # Partially decrypted plaintext is never left behind
            if destination_opened:
                staging.discard(destination_path)
            raise
        logger.info("Decrypted %d bytes from %s", moved, source_path)
        return moved


def _refuse_same_file(source_path: str, destination_path: str) -> None:
    """Reject a destination that is the source itself; truncating it would destroy the input."""
    try:
        same = os.path.samefile(source_path, destination_path)
    except OSError:
        # Destination does not exist yet (or source is unreadable, reported later)
        return
    if same:
        raise InvalidConfiguration(f"Source and destination are the same file: {destination_path}")
