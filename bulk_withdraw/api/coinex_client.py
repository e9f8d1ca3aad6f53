"""
CoinEx v2 API client.
"""
import json
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from ..models.data_models import ApiCredentials, Balance, CoinInfo, NetworkInfo, WithdrawalRequest
from .base_client import ExchangeClient
from .errors import ApiError, classify_rejection
from .signer import current_millis, sign_path_request


class CoinexClient(ExchangeClient):
    """
    CoinEx client for balances, coin networks and withdrawals.

    Requests are signed over ``METHOD + /v2<path> + BODY + TIMESTAMP`` and
    authenticated with the ``X-COINEX-KEY``, ``X-COINEX-SIGN`` and
    ``X-COINEX-TIMESTAMP`` headers. Responses are wrapped in a
    ``{code, message, data}`` envelope where any non-zero code is a rejection.
    """

    name = 'CoinEx'
    default_base_url = 'https://api.coinex.com/v2'
    default_withdrawal_delay_seconds = 1.5
    signature_path_prefix = '/v2'

    def _signed_request(self, method: str, endpoint: str, credentials: ApiCredentials,
                        body: Optional[Dict[str, Any]] = None) -> Any:
        """
        Make an authenticated CoinEx request.

        Args:
            method: HTTP method
            endpoint: API path below the version prefix, query string included
            credentials: Account credentials
            body: JSON body for POST requests

        Returns:
            The ``data`` member of the response envelope

        Raises:
            AuthError: On credential or signature rejection
            NetworkError: On transport failure
            ApiError: On any other rejection or malformed response
        """
        timestamp = str(current_millis())
        body_string = json.dumps(body, separators=(',', ':')) if body else ''
        signature = sign_path_request(
            method,
            f"{self.signature_path_prefix}{endpoint}",
            body_string,
            timestamp,
            credentials.api_secret
        )

        headers = {
            'Content-Type': 'application/json',
            'X-COINEX-KEY': credentials.api_key,
            'X-COINEX-SIGN': signature,
            'X-COINEX-TIMESTAMP': timestamp,
        }

        self._log_request(method, endpoint, body)
        kwargs: Dict[str, Any] = {'headers': headers}
        if body_string and method == 'POST':
            kwargs['data'] = body_string
        response = self._send(method, f"{self.base_url}{endpoint}", **kwargs)

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.ok:
            message = self._error_message(payload, ('message', 'msg'), f"HTTP {response.status_code}")
            code = payload.get('code') if isinstance(payload, dict) else None
            raise classify_rejection(message, self.name, response.status_code, code)

        if not isinstance(payload, dict):
            raise ApiError(
                f"Unexpected response from {self.name} {endpoint}",
                exchange=self.name,
                status_code=response.status_code
            )

        if payload.get('code') != 0:
            message = self._error_message(payload, ('message',), 'API request failed')
            raise classify_rejection(message, self.name, response.status_code, payload.get('code'))

        return payload.get('data')

    def fetch_balances(self, credentials: ApiCredentials) -> List[Balance]:
        """
        Retrieve spot balances, filtering out coins with nothing available or frozen.

        Returns:
            List of Balance objects
        """
        data = self._signed_request('GET', '/assets/spot/balance', credentials)
        if not isinstance(data, list):
            raise ApiError(f"Unexpected balance payload from {self.name}", exchange=self.name)
        return self._collect_balances(data, 'ccy', 'available', 'frozen')

    def fetch_coin_networks(self, credentials: ApiCredentials) -> List[CoinInfo]:
        """
        Retrieve deposit/withdrawal configuration for every coin.

        Returns:
            List of CoinInfo objects; CoinEx chain names double as wire codes
        """
        data = self._signed_request('GET', '/assets/all-deposit-withdraw-config', credentials)
        if not isinstance(data, list):
            raise ApiError(f"Unexpected coin configuration payload from {self.name}", exchange=self.name)

        coins = [self._parse_coin(item) for item in data]
        self.logger.info(f"Retrieved network configuration for {len(coins)} {self.name} coins")
        return coins

    def fetch_withdrawal_config(self, credentials: ApiCredentials, coin: str) -> CoinInfo:
        """
        Retrieve deposit/withdrawal configuration for a single coin.

        Args:
            credentials: Account credentials
            coin: Coin symbol, e.g. ``USDT``

        Returns:
            CoinInfo for the coin
        """
        endpoint = f"/assets/deposit-withdraw-config?ccy={quote(coin, safe='')}"
        data = self._signed_request('GET', endpoint, credentials)
        if not isinstance(data, dict):
            raise ApiError(f"Unexpected configuration payload for {coin} from {self.name}", exchange=self.name)
        return self._parse_coin(data)

    def _parse_coin(self, item: Dict[str, Any]) -> CoinInfo:
        try:
            symbol = item['asset']['ccy']
            networks = [
                NetworkInfo(
                    network=chain['chain'],
                    network_code=chain['chain'],
                    withdraw_fee=str(chain.get('withdrawal_fee', '')),
                    min_withdraw=str(chain.get('min_withdraw_amount', '')),
                    withdraw_enabled=bool(chain.get('withdraw_enabled', False))
                )
                for chain in item.get('chains') or []
            ]
        except (KeyError, TypeError) as e:
            raise ApiError(f"Unexpected coin configuration payload from {self.name}: {e}", exchange=self.name) from e
        return CoinInfo(coin=symbol, name=symbol, networks=networks)

    def _send_withdrawal(self, credentials: ApiCredentials, request: WithdrawalRequest) -> Optional[str]:
        body = {
            'ccy': request.coin,
            'to_address': request.address,
            'amount': request.amount,
        }
        if request.network:
            body['chain'] = request.network
        if request.memo:
            body['memo'] = request.memo
        if request.remark:
            body['remark'] = request.remark

        data = self._signed_request('POST', '/assets/withdraw', credentials, body)
        withdraw_id = data.get('withdraw_id') if isinstance(data, dict) else None
        return str(withdraw_id) if withdraw_id is not None else None
