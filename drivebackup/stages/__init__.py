# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Pipeline Stages - Dump, archive and encryption steps.
"""

from drivebackup.stages.archive import (
    bundle,
    extract,
    find_dump_archive,
    is_archive,
)

from drivebackup.stages.crypto import (
    decrypt_file,
    derive_key,
    encrypt_file,
    is_key_usable,
    iter_decrypted,
)

from drivebackup.stages.dump import (
    Dumper,
    MongoDumper,
)

__all__ = [
    # Archive
    "bundle",
    "extract",
    "find_dump_archive",
    "is_archive",
    # Encryption
    "decrypt_file",
    "derive_key",
    "encrypt_file",
    "is_key_usable",
    "iter_decrypted",
    # Dump
    "Dumper",
    "MongoDumper",
]
