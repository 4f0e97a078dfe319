from __future__ import annotations

import lzma
import zlib
from enum import IntEnum
from typing import Optional

from .constants import CODEC_NONE, CODEC_DEFLATE, CODEC_ZSTD, CODEC_LZMA

_HAS_ZSTD = False
_zstd_mod = None
_ZstdError = RuntimeError
try:  # zstd is an optional extra (pip install cryptarchive[zstd])
    import zstandard as _zstd_mod  # type: ignore
    from zstandard import ZstdError as _ZstdError  # type: ignore
    _HAS_ZSTD = True
except ImportError:
    _zstd_mod = None
    _HAS_ZSTD = False


class CompressionAlgorithm(IntEnum):
    NONE = CODEC_NONE
    DEFLATE = CODEC_DEFLATE
    ZSTD = CODEC_ZSTD
    LZMA = CODEC_LZMA

    @property
    def available(self) -> bool:
        if self is CompressionAlgorithm.ZSTD:
            return _HAS_ZSTD
        return True


class CodecError(RuntimeError):
    pass


class Codec:
    """Whole-block compressor for one compression algorithm.

    Each container segment is compressed independently, so a codec holds no
    state between calls and one instance may serve both directions.
    """

    def __init__(self, algorithm: CompressionAlgorithm, level: Optional[int] = None):
        self.algorithm = CompressionAlgorithm(algorithm)
        self.level = level
        if not self.algorithm.available:
            raise CodecError(f"{self.algorithm.name.lower()} codec selected but its module is not available")

    def compress(self, data: bytes) -> bytes:
        if self.algorithm is CompressionAlgorithm.NONE:
            return data
        if self.algorithm is CompressionAlgorithm.DEFLATE:
            return zlib.compress(data, self.level if self.level is not None else 6)
        if self.algorithm is CompressionAlgorithm.LZMA:
            return lzma.compress(data, preset=self.level if self.level is not None else 6)
        if self.algorithm is CompressionAlgorithm.ZSTD:
            try:
                c = _zstd_mod.ZstdCompressor(level=self.level if self.level is not None else 3)
                return c.compress(data)
            except _ZstdError as e:
                raise CodecError(f"zstd compression failed: {e}") from e
        raise CodecError(f"unsupported codec id: {int(self.algorithm)}")

    def decompress(self, data: bytes, expected_len: int) -> bytes:
        """Inflate ``data``, refusing output that is not exactly ``expected_len`` bytes."""
        if self.algorithm is CompressionAlgorithm.NONE:
            out = data
        elif self.algorithm is CompressionAlgorithm.DEFLATE:
            try:
                d = zlib.decompressobj()
                out = d.decompress(data, expected_len + 1)
            except zlib.error as e:
                raise CodecError(f"deflate decompression failed: {e}") from e
        elif self.algorithm is CompressionAlgorithm.LZMA:
            try:
                d = lzma.LZMADecompressor()
                out = d.decompress(data, max_length=expected_len + 1)
            except lzma.LZMAError as e:
                raise CodecError(f"lzma decompression failed: {e}") from e
        elif self.algorithm is CompressionAlgorithm.ZSTD:
            try:
                d = _zstd_mod.ZstdDecompressor()
                out = d.decompress(data, max_output_size=expected_len + 1)
            except _ZstdError as e:
                raise CodecError(f"zstd decompression failed: {e}") from e
        else:
            raise CodecError(f"unsupported codec id: {int(self.algorithm)}")
        if len(out) != expected_len:
            raise CodecError(f"decompressed {len(out)} bytes, expected {expected_len}")
        return out
