"""Mask-and-sign support for masked copies."""

from .redactor import (
    MASK_KEY,
    SigningRedactor,
    find_all_mask_paths,
    is_mask,
    load_private_jwk,
    sha256_hex,
)

__all__ = [
    "MASK_KEY",
    "SigningRedactor",
    "find_all_mask_paths",
    "is_mask",
    "load_private_jwk",
    "sha256_hex",
]
