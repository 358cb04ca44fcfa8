"""
Cache key derivation.

Hashes a canonical serialization of (filters, options) into a fixed-length
fingerprint. Keys are sorted before hashing, so field order never affects
the result.

Collisions are not detected: 128 bits of SHA-256 make them negligible.
"""

import hashlib
import json
from typing import Any

from cardatlas.models.search import NormalizedFilter, SearchOptions

# Bump when the serialized payload changes shape
CACHE_KEY_VERSION = 1

CACHE_KEY_LENGTH = 32


def canonical_json(payload: dict[str, Any]) -> str:
    """Serialize with sorted keys and no insignificant whitespace."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def _digest(payload: dict[str, Any]) -> str:
    encoded = canonical_json(payload).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()[:CACHE_KEY_LENGTH]


def derive_cache_key(filters: NormalizedFilter, options: SearchOptions) -> str:
    """
    Derive the result cache key for a normalized search request.

    Pure and deterministic: semantically identical requests always map to
    the same 32-character hex key.
    """
    return _digest({"v": CACHE_KEY_VERSION, "f": filters.as_dict(), "o": options.as_dict()})


def derive_filter_fingerprint(filters: NormalizedFilter) -> str:
    """Fingerprint the filters alone, ignoring pagination and ordering."""
    return _digest({"v": CACHE_KEY_VERSION, "f": filters.as_dict()})
