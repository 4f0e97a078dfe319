from __future__ import annotations

import argparse
import os
import sys
import time
from typing import List, Optional

from Cryptodome.PublicKey import ECC

from cryptarchive.codec import CompressionAlgorithm
from cryptarchive.config import FileMode, ProcessorConfiguration
from cryptarchive.context import EncryptionContext
from cryptarchive.errors import CryptarchiveError, UnableToCreateDecryptionContext, UnableToCreateFileStream
from cryptarchive.header import PREAMBLE_SIZE
from cryptarchive.keys import KeySize, SymmetricKey
from cryptarchive.logging_config import configure_logging
from cryptarchive.processor import CryptographicArchiveProcessor
from cryptarchive.profiles import ArchiveProfile
from cryptarchive.streams import file_stream


_PROFILE_CHOICES = {
    "aes-hmac": ArchiveProfile.HKDF_SHA256_AESCTR_HMAC__SYMMETRIC__NONE,
    "aes-hmac-ecdsa": ArchiveProfile.HKDF_SHA256_AESCTR_HMAC__SYMMETRIC__ECDSA_P256,
    "xchacha": ArchiveProfile.HKDF_SHA256_XCHACHA20POLY1305__SYMMETRIC__NONE,
}


def _write_private(path: str, data: bytes) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC | getattr(os, "O_BINARY", 0), 0o600)
    with os.fdopen(fd, "wb") as fh:
        fh.write(data)


def _load_key(key_hex: Optional[str], key_file: Optional[str]) -> SymmetricKey:
    """Resolve the symmetric key from --key or --key-file (hex text)."""
    if key_hex and key_file:
        raise ValueError("Use either --key or --key-file, not both")
    if key_file:
        with open(key_file, "r", encoding="ascii") as fh:
            key_hex = fh.read()
    if not key_hex:
        raise ValueError("A key is required: pass --key HEX or --key-file PATH")
    return SymmetricKey.from_hex(key_hex)


def _load_signing_key(path: Optional[str]):
    if not path:
        return None
    with open(path, "rt", encoding="ascii") as fh:
        return ECC.import_key(fh.read())


def _processor(
    *,
    profile: str = "aes-hmac",
    compression: str = "deflate",
    block_size: Optional[int] = None,
    signing_key: Optional[str] = None,
    permissions: Optional[int] = None,
) -> CryptographicArchiveProcessor:
    ctx_kwargs = {} if block_size is None else {"block_size": block_size}
    context = EncryptionContext(_PROFILE_CHOICES[profile], CompressionAlgorithm[compression.upper()], **ctx_kwargs)
    cfg_kwargs = {} if permissions is None else {"file_permissions": permissions}
    config = ProcessorConfiguration(
        encryption_context=context,
        signing_key=_load_signing_key(signing_key),
        **cfg_kwargs,
    )
    return CryptographicArchiveProcessor(config)


def cmd_keygen(
    *,
    bits: int = 256,
    password: Optional[str] = None,
    salt: Optional[str] = None,
    output: Optional[str] = None,
) -> bool:
    """Generate a symmetric key, or derive one from a password.

    Args:
        bits: Key size (128, 192 or 256).
        password: Derive the key with Argon2id instead of drawing random bytes.
        salt: Hex salt for password derivation (at least 16 bytes).
        output: Write the hex key to this file (mode 0600) instead of stdout.
    """
    size = KeySize(bits)
    if password is not None:
        if not salt:
            raise ValueError("--salt is required with --password")
        key = SymmetricKey.derive_from_password(password, bytes.fromhex(salt), size=size)
    else:
        key = SymmetricKey.generate(size)
    if output:
        _write_private(output, (key.hex() + "\n").encode("ascii"))
        print(f"Wrote {key.bit_count}-bit key to {output}")
    else:
        print(key.hex())
    return True


def cmd_signkey(private_path: str, *, public_path: Optional[str] = None) -> bool:
    """Generate an ECDSA P-256 key pair for the signed profile.

    Args:
        private_path: PEM output for the private key (mode 0600).
        public_path: PEM output for the public key (default: <private_path>.pub).
    """
    public_path = public_path or private_path + ".pub"
    key = ECC.generate(curve="P-256")
    _write_private(private_path, key.export_key(format="PEM").encode("ascii"))
    with open(public_path, "wt", encoding="ascii") as fh:
        fh.write(key.public_key().export_key(format="PEM"))
    print(f"Wrote signing key to {private_path} and verifying key to {public_path}")
    return True


def cmd_seal(
    source: str,
    output: str,
    *,
    key: SymmetricKey,
    profile: str = "aes-hmac",
    compression: str = "deflate",
    block_size: Optional[int] = None,
    signing_key: Optional[str] = None,
    permissions: Optional[int] = None,
    quiet: bool = False,
) -> bool:
    """Encrypt one file into a container.

    Args:
        source: Plain input file.
        output: Container path to create or overwrite.
        key: Symmetric key.
        profile: One of the ``_PROFILE_CHOICES`` names.
        compression: none, deflate, lzma or zstd.
        block_size: Segment size in bytes (default 1 MiB).
        signing_key: PEM private key, required by the aes-hmac-ecdsa profile.
        permissions: Mode bits for the container (default 0o644).
    """
    proc = _processor(
        profile=profile,
        compression=compression,
        block_size=block_size,
        signing_key=signing_key,
        permissions=permissions,
    )
    t0 = time.time()
    proc.encrypt_file_sync(source, key, output)
    if not quiet:
        in_size = os.path.getsize(source)
        out_size = os.path.getsize(output)
        print(f"Sealed {source} -> {output}: {in_size} -> {out_size} bytes in {time.time() - t0:.2f}s")
    return True


def cmd_unseal(archive: str, output: str, *, key: SymmetricKey, signing_key: Optional[str] = None, quiet: bool = False) -> bool:
    """Decrypt a container into ``output``.

    Args:
        archive: Container path.
        output: Destination for the recovered plaintext.
        key: Symmetric key used when sealing.
        signing_key: PEM verifying key for signed containers.
    """
    proc = _processor(signing_key=signing_key)
    t0 = time.time()
    moved = proc.decrypt_file_sync(archive, key, output)
    if not quiet:
        print(f"Unsealed {archive} -> {output}: {moved} bytes in {time.time() - t0:.2f}s")
    return True


def cmd_info(archive: str) -> bool:
    """Show container header metadata; no key is needed.

    Args:
        archive: Container path.
    """
    stream = file_stream(archive, FileMode.READ_ONLY)
    if stream is None:
        raise UnableToCreateFileStream(f"Failed to create file stream for {archive}")
    with stream:
        context = EncryptionContext.from_stream(stream)
    if context is None or context.header is None:
        raise UnableToCreateDecryptionContext(f"{archive} is not a readable container")
    header = context.header
    spec = header.profile.spec
    print(f"Container: {archive}")
    print(f"  Version: {header.version_major}.{header.version_minor}")
    print(f"  UUID: {header.archive_uuid.hex()}")
    print(f"  Profile: {header.profile.name}")
    print(f"    KDF: {spec.kdf}  Cipher: {spec.cipher}  Auth: {spec.auth}  Signature: {spec.signature or 'none'}")
    print(f"  Compression: {header.compression.name.lower()}")
    print(f"  Block size: {header.block_size}")
    print(f"  Payload bytes: {max(os.path.getsize(archive) - PREAMBLE_SIZE, 0)}")
    return True


def _octal(text: str) -> int:
    return int(text, 8)


def _add_key_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--key", help="Symmetric key as hex")
    p.add_argument("--key-file", help="File holding the hex key (as written by 'keygen --output')")


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="cryptarchive",
        description="Encrypted, compressed single-file containers",
        epilog="Keys are never stored by the tool; keep them somewhere safe.",
    )
    ap.add_argument("--log-level", help="Logging level (default: $LOG_LEVEL or WARNING)")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_keygen = sub.add_parser("keygen", help="Generate or derive a symmetric key")
    ap_keygen.add_argument("--bits", type=int, choices=[128, 192, 256], default=256, help="Key size (default 256)")
    ap_keygen.add_argument("--password", help="Derive from this password with Argon2id")
    ap_keygen.add_argument("--salt", help="Hex salt for --password (>= 16 bytes)")
    ap_keygen.add_argument("--output", help="Write the key to this file instead of stdout")

    ap_signkey = sub.add_parser("signkey", help="Generate an ECDSA P-256 signing key pair")
    ap_signkey.add_argument("private", help="Private key PEM output")
    ap_signkey.add_argument("--public", help="Public key PEM output (default: <private>.pub)")

    ap_seal = sub.add_parser("seal", help="Encrypt a file into a container")
    ap_seal.add_argument("source", help="Input file")
    ap_seal.add_argument("output", help="Output container path")
    _add_key_args(ap_seal)
    ap_seal.add_argument("--profile", choices=sorted(_PROFILE_CHOICES), default="aes-hmac", help="Algorithm profile (default aes-hmac)")
    ap_seal.add_argument(
        "--compression",
        choices=[a.name.lower() for a in CompressionAlgorithm],
        default="deflate",
        help="Compression algorithm (default deflate)",
    )
    ap_seal.add_argument("--block-size", type=int, help="Segment size in bytes (default 1 MiB)")
    ap_seal.add_argument("--signing-key", help="Private key PEM (aes-hmac-ecdsa profile)")
    ap_seal.add_argument("--permissions", type=_octal, help="Container mode bits in octal (default 644)")
    ap_seal.add_argument("--quiet", action="store_true", help="Suppress the summary line")

    ap_unseal = sub.add_parser("unseal", help="Decrypt a container into a file")
    ap_unseal.add_argument("archive", help="Container path")
    ap_unseal.add_argument("output", help="Output file")
    _add_key_args(ap_unseal)
    ap_unseal.add_argument("--signing-key", help="Verifying key PEM for signed containers")
    ap_unseal.add_argument("--quiet", action="store_true", help="Suppress the summary line")

    ap_info = sub.add_parser("info", help="Show container header information")
    ap_info.add_argument("archive", help="Container path")

    args = ap.parse_args(argv)
    configure_logging(args.log_level)
    try:
        if args.cmd == "keygen":
            cmd_keygen(bits=args.bits, password=args.password, salt=args.salt, output=args.output)
        elif args.cmd == "signkey":
            cmd_signkey(args.private, public_path=args.public)
        elif args.cmd == "seal":
            cmd_seal(
                args.source,
                args.output,
                key=_load_key(args.key, args.key_file),
                profile=args.profile,
                compression=args.compression,
                block_size=args.block_size,
                signing_key=args.signing_key,
                permissions=args.permissions,
                quiet=args.quiet,
            )
        elif args.cmd == "unseal":
            cmd_unseal(
                args.archive,
                args.output,
                key=_load_key(args.key, args.key_file),
                signing_key=args.signing_key,
                quiet=args.quiet,
            )
        elif args.cmd == "info":
            cmd_info(args.archive)
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (CryptarchiveError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
