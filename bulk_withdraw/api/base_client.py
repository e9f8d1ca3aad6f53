"""
Common capability interface and HTTP plumbing for exchange clients.
"""
import logging
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlsplit

import requests

from ..models.data_models import (
    ApiCredentials, Balance, CoinInfo, ExchangeSettings, WithdrawalRequest, WithdrawalResult
)
from ..utils.security_validator import SecurityValidationError, validate_withdrawal_request
from .errors import ApiError, ExchangeError, NetworkError

SUCCESS_MESSAGE = 'Withdrawal submitted successfully'


class ExchangeClient(ABC):
    """
    Base class for exchange clients.

    Subclasses implement the exchange wire format; this class provides the
    uniform contract used by the bulk executor:

    - ``fetch_balances`` and ``fetch_coin_networks`` raise on failure
    - ``submit_withdrawal`` never raises and reports failures in its result
    """

    name = 'exchange'
    default_base_url = ''
    default_withdrawal_delay_seconds = 1.0

    def __init__(self, settings: Optional[ExchangeSettings] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            settings: Connection settings; exchange defaults are used when omitted
            session: HTTP session to use, mainly for injecting a fake transport
        """
        self.settings = settings or ExchangeSettings(
            name=self.name,
            base_url=self.default_base_url,
            withdrawal_delay_seconds=self.default_withdrawal_delay_seconds
        )
        self.base_url = self.settings.base_url.rstrip('/')
        self.timeout = self.settings.request_timeout_seconds
        self.withdrawal_delay_seconds = self.settings.withdrawal_delay_seconds
        self.session = session or requests.Session()
        self.logger = logging.getLogger(self.__class__.__module__)

    @abstractmethod
    def fetch_balances(self, credentials: ApiCredentials) -> List[Balance]:
        """Return the nonzero spot balances of the account."""

    @abstractmethod
    def fetch_coin_networks(self, credentials: ApiCredentials) -> List[CoinInfo]:
        """Return per-coin withdrawal network configuration."""

    @abstractmethod
    def _send_withdrawal(self, credentials: ApiCredentials, request: WithdrawalRequest) -> Optional[str]:
        """Submit one withdrawal and return the exchange withdrawal id."""

    def submit_withdrawal(self, credentials: ApiCredentials, request: WithdrawalRequest) -> WithdrawalResult:
        """
        Submit a single withdrawal.

        Args:
            credentials: Account credentials
            request: Withdrawal to submit

        Returns:
            WithdrawalResult; failures are reported in ``error`` instead of raised
        """
        try:
            validate_withdrawal_request(request)
            tx_id = self._send_withdrawal(credentials, request)
        except SecurityValidationError as e:
            self.logger.warning(f"Rejected invalid {request.coin} withdrawal before submission: {e}")
            return self._failed_result(request, str(e))
        except ExchangeError as e:
            self.logger.error(
                f"{self.name} withdrawal of {request.amount} {request.coin} failed "
                f"({type(e).__name__}): {e}"
            )
            return self._failed_result(request, str(e) or type(e).__name__)
        except Exception as e:
            self.logger.error(f"Unexpected error submitting {self.name} withdrawal: {e}")
            return self._failed_result(request, str(e) or type(e).__name__)

        self.logger.info(f"{self.name} withdrawal of {request.amount} {request.coin} accepted, id={tx_id}")
        return WithdrawalResult(
            success=True,
            address=request.address,
            amount=request.amount,
            coin=request.coin,
            tx_id=tx_id,
            message=SUCCESS_MESSAGE
        )

    def validate_connection(self, credentials: ApiCredentials) -> bool:
        """
        Validate API connection and credentials with a balance read.

        Returns:
            True if connection is valid, False otherwise
        """
        try:
            self.fetch_balances(credentials)
            self.logger.info(f"{self.name} API connection validated successfully")
            return True
        except ExchangeError as e:
            self.logger.error(f"{self.name} API connection validation failed: {e}")
            return False

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        """Perform an HTTP request and normalise transport errors."""
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            host = urlsplit(url).hostname or self.base_url
            raise NetworkError(
                f"{method} request to {self.name} failed: {type(e).__name__} ({host})", exchange=self.name
            ) from e

    def _log_request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None) -> None:
        names = ', '.join(sorted(params)) if params else '-'
        self.logger.debug(f"{self.name} request: {method} {path} (params: {names})")

    def _failed_result(self, request: WithdrawalRequest, error: str) -> WithdrawalResult:
        return WithdrawalResult(
            success=False,
            address=request.address,
            amount=request.amount,
            coin=request.coin,
            error=error
        )

    def _to_decimal(self, value: Any, field_name: str) -> Decimal:
        try:
            return Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise ApiError(
                f"Malformed {field_name} value from {self.name}: {value!r}", exchange=self.name
            ) from e

    def _collect_balances(self, rows: Iterable[Dict[str, Any]], coin_key: str,
                          free_key: str, locked_key: str) -> List[Balance]:
        """
        Normalise raw balance rows, dropping coins with nothing free or locked.

        Args:
            rows: Raw balance entries from the exchange
            coin_key: Field holding the coin symbol
            free_key: Field holding the available quantity
            locked_key: Field holding the frozen quantity

        Returns:
            List of Balance objects with non-zero quantities
        """
        balances = []
        try:
            for row in rows:
                self._to_decimal(row[free_key], free_key)
                self._to_decimal(row[locked_key], locked_key)
                balance = Balance.from_amounts(row[coin_key], row[free_key], row[locked_key])
                if not balance.is_empty:
                    balances.append(balance)
        except (KeyError, TypeError) as e:
            raise ApiError(f"Unexpected balance payload from {self.name}: {e}", exchange=self.name) from e

        self.logger.info(f"Retrieved {len(balances)} non-zero {self.name} balances")
        return balances

    @staticmethod
    def _error_message(payload: Any, keys: Iterable[str], default: str) -> str:
        if isinstance(payload, dict):
            for key in keys:
                if payload.get(key):
                    return str(payload[key])
        return default
