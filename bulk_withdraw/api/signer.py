"""
HMAC-SHA256 request signing for the supported exchanges.
"""
import hashlib
import hmac
import time
from typing import Any, Dict
from urllib.parse import quote

# Characters left unescaped by a browser's encodeURIComponent.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def hmac_sha256_hexdigest(secret: str, message: str) -> str:
    return hmac.new(secret.encode('utf-8'), message.encode('utf-8'), hashlib.sha256).hexdigest()


def current_millis() -> int:
    return int(time.time() * 1000)


def sign_path_request(method: str, path: str, body: str, timestamp: str, secret: str) -> str:
    """
    Sign a request over its method, versioned path, body and timestamp.

    Args:
        method: HTTP method in upper case
        path: Request path as the exchange reconstructs it, including the
            API version prefix and any query string
        body: Exact JSON body sent, or an empty string
        timestamp: Milliseconds since epoch as a string
        secret: API secret

    Returns:
        Lowercase hex digest
    """
    prepared = f"{method.upper()}{path}{body or ''}{timestamp}"
    return hmac_sha256_hexdigest(secret, prepared).lower()


def build_query_string(params: Dict[str, Any]) -> str:
    """
    Build the URL-encoded query string used for both signing and the URL.

    Keys are sorted so the encoding only depends on the parameter set, and
    entries whose value is None or empty are dropped.

    Args:
        params: Request parameters

    Returns:
        Encoded query string, e.g. ``address=abc&amount=1&coin=USDT``
    """
    pairs = []
    for key in sorted(params):
        value = params[key]
        if value is None or value == '':
            continue
        if isinstance(value, bool):
            value = 'true' if value else 'false'
        pairs.append(f"{key}={quote(str(value), safe=_URI_COMPONENT_SAFE)}")
    return '&'.join(pairs)


def sign_query(query_string: str, secret: str) -> str:
    return hmac_sha256_hexdigest(secret, query_string)
