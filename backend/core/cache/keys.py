"""
Cache key derivation.

Keys are a readable fingerprint of the request parameters, so that
listing-scoped and pattern invalidation can operate on the key string:

    reviews:hostaway:limit=20&listingId=123&page=1
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote, unquote

LISTING_PARAM = "listingId"


def _encode_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, (datetime, date)):
        value = value.isoformat()
    if isinstance(value, (list, tuple, set)):
        # Multi-valued parameters are order-insensitive
        value = ",".join(sorted(str(v) for v in value))
    return quote(str(value), safe="")


def build_cache_key(params: Mapping[str, Any], prefix: str) -> str:
    """
    Build a deterministic cache key from request parameters.

    Unset parameters (None or empty string) are omitted and the remaining
    ones sorted by name, so logically identical requests map to the same key
    regardless of insertion order.
    """
    parts = []
    for name in sorted(params):
        value = params[name]
        if value is None or value == "":
            continue
        parts.append(f"{quote(str(name), safe='')}={_encode_value(value)}")
    return f"{prefix}:{'&'.join(parts)}"


def parse_cache_key(key: str) -> Dict[str, str]:
    """Decode the parameter component of a key built by build_cache_key"""
    _, _, query = key.rpartition(":")
    params = {}
    for part in query.split("&"):
        if not part or "=" not in part:
            continue
        name, _, value = part.partition("=")
        params[unquote(name)] = unquote(value)
    return params


def key_matches_listing(key: str, listing_id: Any) -> bool:
    """True if the key encodes exactly ``listingId=<listing_id>``"""
    component = f"{LISTING_PARAM}={_encode_value(listing_id)}"
    _, _, query = key.rpartition(":")
    return component in query.split("&")
