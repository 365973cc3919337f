"""Utility helpers for the settlement kernel."""

from settlement_kernel.utils.hashing import canonicalize_json, hash_bytes, hash_payload
from settlement_kernel.utils.idempotency import generate_settlement_key

__all__ = [
    "canonicalize_json",
    "hash_bytes",
    "hash_payload",
    "generate_settlement_key",
]
