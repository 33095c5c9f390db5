"""
Cache key fingerprint for AI requests.
The key is the SHA-256 of the compact JSON of the parameters, in the order given.
Keys are NOT canonicalized: {"a": 1, "b": 2} and {"b": 2, "a": 1} hash differently,
so callers must build the parameter mapping in a fixed order.
"""
import hashlib
import json
from typing import Any, Mapping

from app.core.errors import ValidationError


def compute_key(parameters: Mapping[str, Any]) -> str:
    """Return the 64-char hex SHA-256 of json.dumps(parameters) (compact, insertion order, non-ASCII kept).
    Why available: Endpoints look up the response cache with this before enqueueing a job, so identical AI requests are not recomputed or re-billed."""
    if not isinstance(parameters, Mapping):
        raise ValidationError("cache key parameters must be a mapping")
    try:
        serialized = json.dumps(dict(parameters), separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"cache key parameters are not JSON serializable: {e}") from e
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()
