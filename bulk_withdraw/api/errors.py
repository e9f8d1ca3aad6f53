"""
Exception taxonomy shared by the exchange clients.
"""
from typing import Optional


class ExchangeError(Exception):
    """Base exception for all exchange client errors."""

    retriable = False

    def __init__(self, message: str, exchange: Optional[str] = None,
                 status_code: Optional[int] = None, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.exchange = exchange
        self.status_code = status_code
        self.code = code


class AuthError(ExchangeError):
    """Credentials or signature rejected by the exchange."""


class NetworkError(ExchangeError):
    """Transport-level failure (connection, timeout, DNS)."""

    retriable = True


class ApiError(ExchangeError):
    """Well-formed rejection by the exchange, e.g. insufficient balance."""


AUTH_STATUS_CODES = (401, 403)

AUTH_KEYWORDS = (
    'signature',
    'api key',
    'apikey',
    'api-key',
    'access_id',
    'access id',
    'unauthorized',
    'forbidden',
    'recvwindow',
    'timestamp',
)


def classify_rejection(message: str, exchange: str, status_code: Optional[int] = None,
                       code: Optional[int] = None) -> ExchangeError:
    """
    Build the error matching an exchange rejection.

    Args:
        message: Message returned by the exchange
        exchange: Exchange name
        status_code: HTTP status of the response
        code: Exchange-specific error code, if any

    Returns:
        AuthError for credential, signature or clock problems, ApiError otherwise
    """
    lowered = (message or '').lower()
    if status_code in AUTH_STATUS_CODES or any(keyword in lowered for keyword in AUTH_KEYWORDS):
        return AuthError(message, exchange=exchange, status_code=status_code, code=code)
    return ApiError(message, exchange=exchange, status_code=status_code, code=code)
