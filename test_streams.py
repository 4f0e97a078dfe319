from __future__ import annotations

import io
import os
import tempfile
import unittest
from pathlib import Path

from cryptarchive.codec import CompressionAlgorithm
from cryptarchive.config import FileMode, OpenOptions
from cryptarchive.constants import SEG_COMPRESSED
from cryptarchive.context import EncryptionContext
from cryptarchive.errors import ContextBusyError, IntegrityError
from cryptarchive.header import PREAMBLE_SIZE
from cryptarchive.keys import SymmetricKey
from cryptarchive.profiles import ArchiveProfile
from cryptarchive.streams import (
    ByteStream,
    DecryptionStream,
    decryption_stream,
    encryption_stream,
    file_stream,
    process,
)


class MemoryStream(ByteStream):
    """In-memory ByteStream used to exercise the transforms without files."""

    def __init__(self, initial: bytes = b""):
        self._buf = io.BytesIO(initial)

    def readable(self) -> bool:
        return True

    def writable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        return self._buf.read(size)

    def write(self, data) -> int:
        return self._buf.write(data)

    def tell(self) -> int:
        return self._buf.tell()

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._buf.seek(offset, whence)

    def getvalue(self) -> bytes:
        return self._buf.getvalue()


def _seal(payload: bytes, key: SymmetricKey, **ctx_kwargs) -> bytes:
    context = EncryptionContext(**ctx_kwargs)
    context.set_symmetric_key(key)
    sink = MemoryStream()
    enc = encryption_stream(sink, context)
    assert enc is not None
    process(MemoryStream(payload), enc, chunk_size=1000)
    enc.close()
    return sink.getvalue()


def _open(container: bytes, key: SymmetricKey) -> bytes:
    source = MemoryStream(container)
    context = EncryptionContext.from_stream(source)
    assert context is not None
    context.set_symmetric_key(key)
    dec = decryption_stream(source, context)
    assert dec is not None
    sink = MemoryStream()
    with dec:
        process(dec, sink)
    return sink.getvalue()


class StreamChainTests(unittest.TestCase):
    def setUp(self):
        self.key = SymmetricKey.generate()

    def test_process_counts_bytes(self):
        payload = os.urandom(12345)
        sink = MemoryStream()
        self.assertEqual(len(payload), process(MemoryStream(payload), sink, chunk_size=100))
        self.assertEqual(payload, sink.getvalue())

    def test_multi_segment_roundtrip(self):
        payload = os.urandom(4096) * 5 + b"tail"
        container = _seal(payload, self.key, block_size=4096)
        self.assertEqual(payload, _open(container, self.key))

    def test_block_aligned_payload(self):
        payload = b"x" * (4096 * 3)
        container = _seal(payload, self.key, block_size=4096)
        self.assertEqual(payload, _open(container, self.key))

    def test_every_compression_algorithm(self):
        payload = b"compressible line of text\n" * 2000
        for algorithm in CompressionAlgorithm:
            if not algorithm.available:
                continue
            with self.subTest(algorithm=algorithm.name):
                container = _seal(payload, self.key, compression=algorithm)
                self.assertEqual(payload, _open(container, self.key))
                if algorithm is not CompressionAlgorithm.NONE:
                    self.assertLess(len(container), len(payload))

    def test_incompressible_block_stored_raw(self):
        payload = os.urandom(5000)
        container = _seal(payload, self.key)
        seg_flags = container[PREAMBLE_SIZE + 8]
        self.assertFalse(seg_flags & SEG_COMPRESSED)
        self.assertEqual(payload, _open(container, self.key))

    def test_xchacha_profile_roundtrip(self):
        payload = b"xchacha payload " * 700
        container = _seal(
            payload,
            self.key,
            profile=ArchiveProfile.HKDF_SHA256_XCHACHA20POLY1305__SYMMETRIC__NONE,
            block_size=4096,
        )
        self.assertEqual(payload, _open(container, self.key))

    def test_header_read_does_not_consume_stream(self):
        container = _seal(b"position check", self.key)
        source = MemoryStream(container)
        context = EncryptionContext.from_stream(source)
        self.assertIsNotNone(context)
        self.assertEqual(0, source.tell())
        self.assertEqual(ArchiveProfile.HKDF_SHA256_AESCTR_HMAC__SYMMETRIC__NONE, context.profile)
        self.assertEqual(CompressionAlgorithm.DEFLATE, context.compression)

    def test_garbage_has_no_context(self):
        self.assertIsNone(EncryptionContext.from_stream(MemoryStream(b"\x00" * 200)))
        self.assertIsNone(EncryptionContext.from_stream(MemoryStream(b"short")))

    def test_wrong_key_fails_at_construction(self):
        container = _seal(b"secret", self.key)
        source = MemoryStream(container)
        context = EncryptionContext.from_stream(source)
        context.set_symmetric_key(SymmetricKey.generate())
        self.assertIsNone(decryption_stream(source, context))
        # The failed attempt must not leave the context claimed
        source.seek(0)
        context.set_symmetric_key(self.key)
        self.assertIsNotNone(decryption_stream(source, context))

    def test_unbound_context_cannot_open_streams(self):
        self.assertIsNone(encryption_stream(MemoryStream(), EncryptionContext()))

    def test_context_backs_one_stream_at_a_time(self):
        context = EncryptionContext()
        context.set_symmetric_key(self.key)
        first = encryption_stream(MemoryStream(), context)
        self.assertIsNotNone(first)
        self.assertIsNone(encryption_stream(MemoryStream(), context))
        with self.assertRaises(ContextBusyError):
            context.acquire()
        first.close()
        self.assertIsNotNone(encryption_stream(MemoryStream(), context))

    def test_aborted_stream_is_not_a_valid_container(self):
        context = EncryptionContext()
        context.set_symmetric_key(self.key)
        sink = MemoryStream()
        with self.assertRaises(RuntimeError):
            with encryption_stream(sink, context) as enc:
                enc.write(b"partial data")
                raise RuntimeError("boom")
        with self.assertRaises(IntegrityError):
            _open(sink.getvalue(), self.key)

    def test_trailing_bytes_rejected(self):
        container = _seal(b"payload", self.key) + b"extra"
        with self.assertRaises(IntegrityError):
            _open(container, self.key)

    def test_reordered_segments_rejected(self):
        payload = b"a" * 4096 + b"b" * 4096 + b"c"
        container = bytearray(_seal(payload, self.key, compression=CompressionAlgorithm.NONE, block_size=4096))
        seg_len = 9 + 4096 + 32
        first = container[PREAMBLE_SIZE : PREAMBLE_SIZE + seg_len]
        second = container[PREAMBLE_SIZE + seg_len : PREAMBLE_SIZE + 2 * seg_len]
        container[PREAMBLE_SIZE : PREAMBLE_SIZE + 2 * seg_len] = second + first
        with self.assertRaises(IntegrityError):
            _open(bytes(container), self.key)

    def test_decryption_stream_reads_in_small_pieces(self):
        payload = bytes(range(256)) * 100
        container = _seal(payload, self.key, block_size=4096)
        source = MemoryStream(container)
        context = EncryptionContext.from_stream(source)
        context.set_symmetric_key(self.key)
        out = bytearray()
        with DecryptionStream(source, context) as dec:
            while True:
                piece = dec.read(777)
                if not piece:
                    break
                out += piece
        self.assertEqual(payload, bytes(out))


class FileStreamTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.tmp_path = Path(self._tmp.name)

    def test_missing_file_is_none(self):
        self.assertIsNone(file_stream(str(self.tmp_path / "absent"), FileMode.READ_ONLY))

    def test_write_without_create_fails_for_new_file(self):
        self.assertIsNone(file_stream(str(self.tmp_path / "new"), FileMode.WRITE_ONLY, OpenOptions.NONE))

    def test_exclusive_create(self):
        path = self.tmp_path / "exclusive"
        opts = OpenOptions.CREATE | OpenOptions.EXCLUSIVE
        stream = file_stream(str(path), FileMode.WRITE_ONLY, opts, 0o600)
        self.assertIsNotNone(stream)
        with stream:
            stream.write(b"once")
        self.assertIsNone(file_stream(str(path), FileMode.WRITE_ONLY, opts, 0o600))

    def test_truncate_overwrites(self):
        path = self.tmp_path / "overwrite"
        path.write_bytes(b"a much longer original content")
        with file_stream(str(path), FileMode.WRITE_ONLY, OpenOptions.CREATE | OpenOptions.TRUNCATE) as stream:
            stream.write(b"short")
        self.assertEqual(b"short", path.read_bytes())

    def test_read_only_stream_rejects_write(self):
        path = self.tmp_path / "ro"
        path.write_bytes(b"data")
        with file_stream(str(path)) as stream:
            self.assertTrue(stream.readable())
            self.assertFalse(stream.writable())
            self.assertEqual(b"data", stream.read())
            with self.assertRaises(io.UnsupportedOperation):
                stream.write(b"more")


if __name__ == "__main__":
    unittest.main()
