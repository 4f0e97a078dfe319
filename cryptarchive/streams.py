"""Composable byte streams: file-backed, encrypting and decrypting.

Streams are chained by wrapping: an ``EncryptionStream`` writes into a
``FileStream``, a ``DecryptionStream`` reads from one. ``process`` pumps one
stream into another until the reader is exhausted.

Derived streams never close the stream they wrap. Callers close them
explicitly, crypto stream first: ``EncryptionStream.close`` writes the final
segment (and signature) into the underlying file, so the file must still be
open at that point. ``contextlib.ExitStack`` entered in wrapping order gives
exactly that release order.

Constructor helpers (``file_stream``, ``encryption_stream``,
``decryption_stream``) return None on failure and log the cause at debug level.
"""

from __future__ import annotations

import io
import logging
import os
import struct
from typing import Optional, Union

from Cryptodome.Hash import SHA256

from .ciphers import build_suite, header_authenticator, verify_header_authenticator
from .codec import Codec, CodecError, CompressionAlgorithm
from .config import FileMode, OpenOptions
from .constants import (
    DEFAULT_FILE_PERMISSIONS,
    DEFAULT_PUMP_CHUNK_SIZE,
    HEADER_MAC_SIZE,
    SEG_COMPRESSED,
    SEG_FINAL,
    SIGNATURE_SIZE,
)
from .context import EncryptionContext
from .errors import CryptarchiveError, HeaderError, IntegrityError, InvalidKeyError
from .header import HEADER_SIZE


logger = logging.getLogger(__name__)

_SEG_STRUCT = struct.Struct("<IIB")
# stored_len u32, raw_len u32, flags u8; followed by stored_len sealed bytes and the suite tag

_BytesLike = Union[bytes, bytearray, memoryview]


def read_exactly(stream: "ByteStream", n: int) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        chunk = stream.read(n - len(buf))
        if not chunk:
            raise EOFError(f"expected {n} bytes, stream ended after {len(buf)}")
        buf += chunk
    return bytes(buf)


def write_all(stream: "ByteStream", data: _BytesLike) -> None:
    view = memoryview(data)
    while view:
        n = stream.write(view)
        if not n:
            raise OSError("stream accepted no bytes")
        view = view[n:]


class ByteStream:
    closed = False

    def readable(self) -> bool:
        return False

    def writable(self) -> bool:
        return False

    def read(self, size: int = -1) -> bytes:
        raise io.UnsupportedOperation(f"{type(self).__name__} is not readable")

    def write(self, data: _BytesLike) -> int:
        raise io.UnsupportedOperation(f"{type(self).__name__} is not writable")

    def tell(self) -> int:
        raise io.UnsupportedOperation(f"{type(self).__name__} is not seekable")

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        raise io.UnsupportedOperation(f"{type(self).__name__} is not seekable")

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class FileStream(ByteStream):
    def __init__(
        self,
        path: str,
        mode: FileMode = FileMode.READ_ONLY,
        options: OpenOptions = OpenOptions.NONE,
        permissions: int = DEFAULT_FILE_PERMISSIONS,
    ):
        self.path = str(path)
        self.mode = mode
        flags = mode.value | int(options) | getattr(os, "O_BINARY", 0)
        fd = os.open(self.path, flags, permissions)
        try:
            if mode.writable and options & OpenOptions.CREATE:
                _safe_fchmod(fd, self.path, permissions)
            py_mode = {FileMode.READ_ONLY: "rb", FileMode.WRITE_ONLY: "wb", FileMode.READ_WRITE: "r+b"}[mode]
            self._fh = os.fdopen(fd, py_mode)
        except BaseException:
            os.close(fd)
            raise

    def __repr__(self) -> str:
        return f"FileStream({self.path!r}, {self.mode.name})"

    def readable(self) -> bool:
        return self.mode.readable

    def writable(self) -> bool:
        return self.mode.writable

    def read(self, size: int = -1) -> bytes:
        return self._fh.read(size)

    def write(self, data: _BytesLike) -> int:
        return self._fh.write(data)

    def tell(self) -> int:
        return self._fh.tell()

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._fh.seek(offset, whence)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._fh.close()


def _safe_fchmod(fd: int, path: str, mode: int) -> None:
    """Best-effort permission fix-up; os.open only applies ``mode`` (minus umask) on creation."""
    if not hasattr(os, "fchmod"):
        return
    try:
        os.fchmod(fd, mode)
    except OSError as exc:
        logger.warning("Failed to set mode %#o on %s: %s", mode, path, exc)


class EncryptionStream(ByteStream):
    """Write-side transform: plaintext in, container bytes out to ``sink``.

    The header and its authenticator are written on construction. Plaintext is
    cut into ``context.block_size`` blocks; each block is compressed (kept raw
    when that does not shrink it), sealed, and written as one segment. The last
    segment carries SEG_FINAL and is only written by ``close``.
    """

    def __init__(self, sink: ByteStream, context: EncryptionContext):
        if not context.has_symmetric_key:
            raise InvalidKeyError("context has no symmetric key")
        if context.requires_signing_key and not context.can_sign:
            raise InvalidKeyError(f"profile {context.profile.name} needs a private signing key")
        context.acquire()
        try:
            self._sink = sink
            self._context = context
            self._codec = Codec(context.compression)
            header = context.new_header()
            keys = context.derive_keys(header.salt)
            raw = header.pack()
            self._header_mac = header_authenticator(keys.header_mac_key, raw)
            self._suite = build_suite(context.profile, keys.payload_key, keys.payload_mac_key)
            self._transcript = SHA256.new(raw + self._header_mac) if header.signed else None
            write_all(sink, raw + self._header_mac)
        except BaseException:
            context.release()
            raise
        self._block_size = context.block_size
        self._buffer = bytearray()
        self._index = 0
        self.bytes_in = 0

    def writable(self) -> bool:
        return True

    def write(self, data: _BytesLike) -> int:
        if self.closed:
            raise ValueError("write to closed EncryptionStream")
        self._buffer += data
        self.bytes_in += len(data)
        # Strictly greater: the trailing block, even a full one, is held back for the final segment
        while len(self._buffer) > self._block_size:
            block = bytes(self._buffer[: self._block_size])
            del self._buffer[: self._block_size]
            self._emit(block, final=False)
        return len(data)

    def _emit(self, block: bytes, *, final: bool) -> None:
        flags = SEG_FINAL if final else 0
        payload = block
        if block and self._codec.algorithm is not CompressionAlgorithm.NONE:
            packed = self._codec.compress(block)
            if len(packed) < len(block):
                payload = packed
                flags |= SEG_COMPRESSED
        seg_hdr = _SEG_STRUCT.pack(len(payload), len(block), flags)
        ciphertext, tag = self._suite.seal(self._index, self._header_mac + seg_hdr, payload)
        write_all(self._sink, seg_hdr + ciphertext + tag)
        if self._transcript is not None:
            self._transcript.update(seg_hdr + tag)
        self._index += 1

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._emit(bytes(self._buffer), final=True)
            if self._transcript is not None:
                write_all(self._sink, self._context.signer().sign(self._transcript))
            logger.debug("Encryption stream finished: %d bytes in %d segments", self.bytes_in, self._index)
        finally:
            self.closed = True
            self._buffer = bytearray()
            self._context.release()

    def abort(self) -> None:
        """Release the context without writing the final segment."""
        if self.closed:
            return
        self.closed = True
        self._buffer = bytearray()
        self._context.release()

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.abort()
        else:
            self.close()


class DecryptionStream(ByteStream):
    """Read-side transform: container bytes from ``source``, plaintext out.

    Construction re-reads the header (it must match the one the context was
    derived from) and checks the header authenticator, which fails for any key
    other than the one used to encrypt. Segments are then opened lazily; a
    failed tag, a truncated container, trailing bytes or a bad signature raise
    IntegrityError from ``read``.
    """

    def __init__(self, source: ByteStream, context: EncryptionContext):
        if not context.has_symmetric_key:
            raise InvalidKeyError("context has no symmetric key")
        if context.header is None or context.header_bytes is None:
            raise HeaderError("context was not derived from a container header")
        if context.requires_signing_key and not context.can_verify:
            raise InvalidKeyError(f"profile {context.profile.name} needs a verifying key")
        context.acquire()
        try:
            self._source = source
            self._context = context
            raw = read_exactly(source, HEADER_SIZE)
            if raw != context.header_bytes:
                raise HeaderError("stream header does not match the decryption context")
            header_mac = read_exactly(source, HEADER_MAC_SIZE)
            keys = context.derive_keys(context.header.salt)
            if not verify_header_authenticator(keys.header_mac_key, raw, header_mac):
                raise IntegrityError("header authentication failed")
            self._header_mac = header_mac
            self._suite = build_suite(context.profile, keys.payload_key, keys.payload_mac_key)
            self._codec = Codec(context.compression)
            self._transcript = SHA256.new(raw + header_mac) if context.header.signed else None
        except BaseException:
            context.release()
            raise
        self._block_size = context.block_size
        self._pending = bytearray()
        self._index = 0
        self._eof = False

    def readable(self) -> bool:
        return True

    def _read_or_truncated(self, n: int) -> bytes:
        try:
            return read_exactly(self._source, n)
        except EOFError:
            raise IntegrityError("container is truncated") from None

    def _next_segment(self) -> bytes:
        seg_hdr = self._read_or_truncated(_SEG_STRUCT.size)
        stored_len, raw_len, flags = _SEG_STRUCT.unpack(seg_hdr)
        compressed = bool(flags & SEG_COMPRESSED)
        if stored_len > self._block_size or raw_len > self._block_size:
            raise IntegrityError(f"segment {self._index} exceeds block size")
        if not compressed and stored_len != raw_len:
            raise IntegrityError(f"segment {self._index} length mismatch")
        body = self._read_or_truncated(stored_len + self._suite.tag_size)
        ciphertext, tag = body[:stored_len], body[stored_len:]
        payload = self._suite.open(self._index, self._header_mac + seg_hdr, ciphertext, tag)
        if compressed:
            try:
                payload = self._codec.decompress(payload, raw_len)
            except CodecError as exc:
                raise IntegrityError(f"segment {self._index}: {exc}") from exc
        if self._transcript is not None:
            self._transcript.update(seg_hdr + tag)
        self._index += 1
        if flags & SEG_FINAL:
            self._finish()
        return payload

    def _finish(self) -> None:
        if self._transcript is not None:
            signature = self._read_or_truncated(SIGNATURE_SIZE)
            try:
                self._context.verifier().verify(self._transcript, signature)
            except ValueError:
                raise IntegrityError("container signature does not verify") from None
        if self._source.read(1):
            raise IntegrityError("unexpected data after final segment")
        self._eof = True

    def read(self, size: int = -1) -> bytes:
        if self.closed:
            raise ValueError("read from closed DecryptionStream")
        if size is None or size < 0:
            while not self._eof:
                self._pending += self._next_segment()
            size = len(self._pending)
        while len(self._pending) < size and not self._eof:
            self._pending += self._next_segment()
        out = bytes(self._pending[:size])
        del self._pending[:size]
        return out

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._pending = bytearray()
        self._context.release()


def file_stream(
    path: str,
    mode: FileMode = FileMode.READ_ONLY,
    options: OpenOptions = OpenOptions.NONE,
    permissions: int = DEFAULT_FILE_PERMISSIONS,
) -> Optional[FileStream]:
    try:
        return FileStream(path, mode, options, permissions)
    except OSError as exc:
        logger.debug("Cannot open %s (%s): %s", path, mode.name, exc)
        return None


def encryption_stream(writing_to: ByteStream, context: EncryptionContext) -> Optional[EncryptionStream]:
    try:
        return EncryptionStream(writing_to, context)
    except (CryptarchiveError, CodecError, OSError, ValueError) as exc:
        logger.debug("Cannot open encryption stream over %r: %s", writing_to, exc)
        return None


def decryption_stream(reading_from: ByteStream, context: EncryptionContext) -> Optional[DecryptionStream]:
    try:
        return DecryptionStream(reading_from, context)
    except (CryptarchiveError, CodecError, OSError, ValueError, EOFError) as exc:
        logger.debug("Cannot open decryption stream over %r: %s", reading_from, exc)
        return None


def process(reading_from: ByteStream, writing_to: ByteStream, *, chunk_size: int = DEFAULT_PUMP_CHUNK_SIZE) -> int:
    """Drain ``reading_from`` into ``writing_to``; returns the number of bytes moved."""
    total = 0
    while True:
        chunk = reading_from.read(chunk_size)
        if not chunk:
            break
        write_all(writing_to, chunk)
        total += len(chunk)
    return total
