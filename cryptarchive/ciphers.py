"""Per-segment authenticated encryption suites.

Every container segment is sealed independently under keys derived once per
archive. The segment index feeds the nonce, so reusing the derived keys across
segments never reuses a (key, nonce) pair, and the index is also bound into
the authenticator so segments cannot be reordered.

Two suites are provided:

- AES-256-CTR with an HMAC-SHA256 tag (encrypt-then-MAC)
- XChaCha20-Poly1305 (IETF), built from HChaCha20 plus PyCryptodomex's
  12-byte ChaCha20-Poly1305, matching libsodium's construction
"""

from __future__ import annotations

from typing import Tuple

from Cryptodome.Cipher import AES, ChaCha20_Poly1305
from Cryptodome.Hash import HMAC, SHA256

from .errors import IntegrityError
from .profiles import ArchiveProfile


_CHACHA_CONST = (
    0x61707865,
    0x3320646E,
    0x79622D32,
    0x6B206574,
)
_KEY_SIZE = 32
_HMAC_TAG_SIZE = 32
_POLY_TAG_SIZE = 16
_XNONCE_SIZE = 24


def _index_bytes(index: int) -> bytes:
    return index.to_bytes(8, "big")


def header_authenticator(mac_key: bytes, header: bytes) -> bytes:
    """HMAC-SHA256 over the raw header; doubles as a key check value."""
    return HMAC.new(mac_key, header, digestmod=SHA256).digest()


def verify_header_authenticator(mac_key: bytes, header: bytes, tag: bytes) -> bool:
    h = HMAC.new(mac_key, header, digestmod=SHA256)
    try:
        h.verify(tag)
    except ValueError:
        return False
    return True


class AesCtrHmacSuite:
    tag_size = _HMAC_TAG_SIZE

    def __init__(self, enc_key: bytes, mac_key: bytes):
        if len(enc_key) != _KEY_SIZE or len(mac_key) != _KEY_SIZE:
            raise ValueError("AES-CTR/HMAC suite expects two 32-byte keys")
        self._enc_key = enc_key
        self._mac_key = mac_key

    def _tag(self, index: int, aad: bytes, ciphertext: bytes) -> HMAC.HMAC:
        h = HMAC.new(self._mac_key, digestmod=SHA256)
        h.update(aad)
        h.update(_index_bytes(index))
        h.update(ciphertext)
        return h

    def seal(self, index: int, aad: bytes, plaintext: bytes) -> Tuple[bytes, bytes]:
        cipher = AES.new(self._enc_key, AES.MODE_CTR, nonce=_index_bytes(index))
        ciphertext = cipher.encrypt(plaintext)
        return ciphertext, self._tag(index, aad, ciphertext).digest()

    def open(self, index: int, aad: bytes, ciphertext: bytes, tag: bytes) -> bytes:
        try:
            self._tag(index, aad, ciphertext).verify(tag)
        except ValueError:
            raise IntegrityError(f"segment {index} failed authentication") from None
        cipher = AES.new(self._enc_key, AES.MODE_CTR, nonce=_index_bytes(index))
        return cipher.decrypt(ciphertext)


def _rotl32(v: int, n: int) -> int:
    return ((v << n) & 0xFFFFFFFF) | (v >> (32 - n))


def _quarter_round(state: list[int], a: int, b: int, c: int, d: int) -> None:
    state[a] = (state[a] + state[b]) & 0xFFFFFFFF
    state[d] = _rotl32(state[d] ^ state[a], 16)
    state[c] = (state[c] + state[d]) & 0xFFFFFFFF
    state[b] = _rotl32(state[b] ^ state[c], 12)
    state[a] = (state[a] + state[b]) & 0xFFFFFFFF
    state[d] = _rotl32(state[d] ^ state[a], 8)
    state[c] = (state[c] + state[d]) & 0xFFFFFFFF
    state[b] = _rotl32(state[b] ^ state[c], 7)


def hchacha20(key: bytes, nonce16: bytes) -> bytes:
    if len(key) != _KEY_SIZE:
        raise ValueError("HChaCha20 expects 32-byte key")
    if len(nonce16) != 16:
        raise ValueError("HChaCha20 expects 16-byte nonce")

    state = list(_CHACHA_CONST)
    state.extend(int.from_bytes(key[i : i + 4], "little") for i in range(0, 32, 4))
    state.extend(int.from_bytes(nonce16[i : i + 4], "little") for i in range(0, 16, 4))

    for _ in range(10):  # 20 rounds
        _quarter_round(state, 0, 4, 8, 12)
        _quarter_round(state, 1, 5, 9, 13)
        _quarter_round(state, 2, 6, 10, 14)
        _quarter_round(state, 3, 7, 11, 15)
        _quarter_round(state, 0, 5, 10, 15)
        _quarter_round(state, 1, 6, 11, 12)
        _quarter_round(state, 2, 7, 8, 13)
        _quarter_round(state, 3, 4, 9, 14)

    out = state[0:4] + state[12:16]
    return b"".join(word.to_bytes(4, "little") for word in out)


class XChaCha20Poly1305Suite:
    tag_size = _POLY_TAG_SIZE

    def __init__(self, key: bytes):
        if len(key) != _KEY_SIZE:
            raise ValueError("Key must be 32 bytes for XChaCha20-Poly1305")
        self._key = key

    def _cipher(self, index: int):
        nonce = index.to_bytes(_XNONCE_SIZE, "big")
        subkey = hchacha20(self._key, nonce[:16])
        return ChaCha20_Poly1305.new(key=subkey, nonce=b"\x00\x00\x00\x00" + nonce[16:])

    def seal(self, index: int, aad: bytes, plaintext: bytes) -> Tuple[bytes, bytes]:
        cipher = self._cipher(index)
        cipher.update(aad)
        return cipher.encrypt_and_digest(plaintext)

    def open(self, index: int, aad: bytes, ciphertext: bytes, tag: bytes) -> bytes:
        cipher = self._cipher(index)
        cipher.update(aad)
        try:
            return cipher.decrypt_and_verify(ciphertext, tag)
        except ValueError:
            raise IntegrityError(f"segment {index} failed authentication") from None


def build_suite(profile: ArchiveProfile, payload_key: bytes, payload_mac_key: bytes):
    if profile.spec.cipher == "xchacha20":
        return XChaCha20Poly1305Suite(payload_key)
    return AesCtrHmacSuite(payload_key, payload_mac_key)
