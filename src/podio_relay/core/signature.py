"""
Podio push signature verification.

Podio signs each webhook delivery with an HMAC of the JSON body keyed by the
push secret. The digest is computed over the same serialization the platform
produces with JSON.stringify (compact separators, original key order,
unescaped unicode, JavaScript number formatting).
"""
import hashlib
import hmac
import json
import logging
import math
from decimal import Decimal
from typing import Any, List

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHMS = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
}


def _format_float(value: float) -> str:
    """Format a float the way ECMAScript's Number#toString does."""
    if not math.isfinite(value):
        return "null"
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).normalize().as_tuple()
    digits = "".join(map(str, digit_tuple))
    k = len(digits)
    # value == 0.digits * 10**n
    n = k + exponent

    if k <= n <= 21:
        text = digits + "0" * (n - k)
    elif 0 < n <= 21:
        text = f"{digits[:n]}.{digits[n:]}"
    elif -6 < n <= 0:
        text = "0." + "0" * -n + digits
    else:
        mantissa = digits if k == 1 else f"{digits[0]}.{digits[1:]}"
        text = f"{mantissa}e{'+' if n > 0 else '-'}{abs(n - 1)}"
    return sign + text


def _encode(value: Any, parts: List[str]) -> None:
    if isinstance(value, str):
        parts.append(json.dumps(value, ensure_ascii=False))
    elif value is None or isinstance(value, bool):
        parts.append(json.dumps(value))
    elif isinstance(value, int):
        parts.append(int.__repr__(value))
    elif isinstance(value, float):
        parts.append(_format_float(value))
    elif isinstance(value, dict):
        parts.append("{")
        for index, (key, item) in enumerate(value.items()):
            if not isinstance(key, str):
                raise TypeError(f"Object keys must be str, not {type(key).__name__}")
            if index:
                parts.append(",")
            parts.append(json.dumps(key, ensure_ascii=False))
            parts.append(":")
            _encode(item, parts)
        parts.append("}")
    elif isinstance(value, (list, tuple)):
        parts.append("[")
        for index, item in enumerate(value):
            if index:
                parts.append(",")
            _encode(item, parts)
        parts.append("]")
    else:
        raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonical_json(body: Any) -> bytes:
    """
    Serialize a parsed JSON body the way the sender does before signing.

    Matches ``JSON.stringify``: compact separators, insertion key order,
    unescaped unicode, and JavaScript number formatting (``1.0`` is written
    as ``1``, ``1e-07`` as ``1e-7``).
    """
    parts: List[str] = []
    _encode(body, parts)
    return "".join(parts).encode("utf-8")

def sign(body: Any, secret: str, algorithm: str = "sha1") -> str:
    """Return the hex HMAC digest for ``body``."""
    digestmod = SUPPORTED_ALGORITHMS[algorithm]
    return hmac.new(secret.encode("utf-8"), canonical_json(body), digestmod).hexdigest()


def verify(
    body: Any,
    provided_signature: str | None,
    secret: str | None,
    algorithm: str = "sha1",
) -> bool:
    """
    Check ``provided_signature`` against the digest of ``body``.

    Never raises: a missing signature or secret, an unknown algorithm or a
    body that cannot be serialized all count as a mismatch.
    """
    if not isinstance(provided_signature, str) or not isinstance(secret, str):
        return False
    if not provided_signature or not secret:
        return False

    if algorithm not in SUPPORTED_ALGORITHMS:
        logger.error(f"Unsupported signature algorithm: {algorithm}")
        return False

    try:
        expected = sign(body, secret, algorithm)
    except (TypeError, ValueError, RecursionError) as e:
        logger.warning(f"Could not serialize body for signature check: {e}")
        return False

    return hmac.compare_digest(expected.encode("ascii"), provided_signature.strip().encode("utf-8"))
