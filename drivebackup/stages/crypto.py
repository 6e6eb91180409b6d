# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
drivebackup Encryption Stage - AES-256-CBC file encryption.

On-disk layout of an encrypted artifact:

    +----------------+-----------------------------------------+
    | 16-byte raw IV | AES-256-CBC ciphertext (PKCS7 padding)  |
    +----------------+-----------------------------------------+

This layout is shared with archives produced by earlier releases, so
it must not change. Files are processed in chunks and never loaded into
memory as a whole.
"""

import os
import threading
from pathlib import Path
from typing import Iterator

import structlog
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from drivebackup.config import MIN_ENCRYPTION_KEY_LENGTH
from drivebackup.exceptions import EncryptionError

logger = structlog.get_logger()

IV_LENGTH = 16
KEY_LENGTH = 32  # AES-256
CHUNK_SIZE = 64 * 1024


def is_key_usable(secret: str | None) -> bool:
    """True if the secret is long enough to turn encryption on."""
    return bool(secret) and len(secret) >= MIN_ENCRYPTION_KEY_LENGTH


def derive_key(secret: str) -> bytes:
    """
    Derive the AES key from the configured secret.

    The UTF-8 encoded secret is truncated, or right-padded with zero
    bytes, to exactly 32 bytes.
    """
    raw = secret.encode("utf-8")[:KEY_LENGTH]
    return raw.ljust(KEY_LENGTH, b"\0")


def _check_cancelled(cancel: threading.Event | None, path: Path) -> None:
    if cancel is not None and cancel.is_set():
        raise EncryptionError("Cancelled", details={"path": str(path)})


def encrypt_file(
    src_path: Path,
    dest_path: Path,
    secret: str,
    cancel: threading.Event | None = None,
) -> None:
    """
    Encrypt a file, writing the random IV first.

    Args:
        src_path: Plaintext file
        dest_path: Destination for IV + ciphertext
        secret: Configured encryption secret
        cancel: Checked between chunks; once set the partial output is
            removed

    Raises:
        EncryptionError: If reading or writing fails, or on cancellation
    """
    iv = os.urandom(IV_LENGTH)
    encryptor = Cipher(algorithms.AES(derive_key(secret)), modes.CBC(iv)).encryptor()
    padder = padding.PKCS7(algorithms.AES.block_size).padder()

    try:
        with open(src_path, "rb") as src, open(dest_path, "wb") as dest:
            dest.write(iv)
            for chunk in iter(lambda: src.read(CHUNK_SIZE), b""):
                _check_cancelled(cancel, dest_path)
                dest.write(encryptor.update(padder.update(chunk)))
            dest.write(encryptor.update(padder.finalize()) + encryptor.finalize())
    except EncryptionError:
        Path(dest_path).unlink(missing_ok=True)
        raise
    except OSError as e:
        raise EncryptionError(
            f"Failed to encrypt file: {e}",
            details={"src_path": str(src_path), "dest_path": str(dest_path)},
        )

    logger.debug("file_encrypted", src_path=str(src_path), dest_path=str(dest_path))


def iter_decrypted(src_path: Path, secret: str) -> Iterator[bytes]:
    """
    Stream the plaintext of an encrypted file.

    The first 16 bytes are read as the IV; the remainder is decrypted
    chunk by chunk.

    Raises:
        EncryptionError: If the file is truncated or the padding is invalid
            (usually a wrong key or a file that was never encrypted)
    """
    with open(src_path, "rb") as src:
        iv = src.read(IV_LENGTH)
        if len(iv) != IV_LENGTH:
            raise EncryptionError(
                "Encrypted file is shorter than the IV",
                details={"src_path": str(src_path)},
            )

        decryptor = Cipher(algorithms.AES(derive_key(secret)), modes.CBC(iv)).decryptor()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()

        try:
            for chunk in iter(lambda: src.read(CHUNK_SIZE), b""):
                plain = unpadder.update(decryptor.update(chunk))
                if plain:
                    yield plain
            yield unpadder.update(decryptor.finalize()) + unpadder.finalize()
        except ValueError as e:
            raise EncryptionError(
                f"Failed to decrypt file: {e}",
                details={"src_path": str(src_path)},
            )


def decrypt_file(
    src_path: Path,
    dest_path: Path,
    secret: str,
    cancel: threading.Event | None = None,
) -> None:
    """
    Decrypt a file produced by encrypt_file().

    A partially written destination is removed if decryption fails or
    the cancel event is set.
    """
    try:
        with open(dest_path, "wb") as dest:
            for chunk in iter_decrypted(src_path, secret):
                _check_cancelled(cancel, dest_path)
                dest.write(chunk)
    except EncryptionError:
        Path(dest_path).unlink(missing_ok=True)
        raise
    except OSError as e:
        Path(dest_path).unlink(missing_ok=True)
        raise EncryptionError(
            f"Failed to decrypt file: {e}",
            details={"src_path": str(src_path), "dest_path": str(dest_path)},
        )

    logger.debug("file_decrypted", src_path=str(src_path), dest_path=str(dest_path))
