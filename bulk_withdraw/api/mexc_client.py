"""
MEXC spot API client.

Signed requests carry every parameter in the query string, signed with
HMAC-SHA256 over the same encoded string, and the raw API key in the
``X-MEXC-APIKEY`` header.
"""
from typing import Any, Dict, List, Optional

import requests

from ..models.data_models import (
    ApiCredentials, Balance, CoinInfo, ExchangeSettings, NetworkInfo, WithdrawalRequest
)
from .base_client import ExchangeClient
from .errors import ApiError, classify_rejection
from .signer import build_query_string, current_millis, sign_query


class MexcClient(ExchangeClient):
    """
    MEXC client for balances, coin networks and withdrawals.

    MEXC distinguishes a network's display name (``network``) from the code
    its withdraw endpoint expects (``netWork``). Withdrawals are always sent
    with the wire code, resolved from the coin configuration which is loaded
    once per account and kept for the lifetime of the client.
    """

    name = 'MEXC'
    default_base_url = 'https://api.mexc.com'
    default_withdrawal_delay_seconds = 1.0

    def __init__(self, settings: Optional[ExchangeSettings] = None,
                 session: Optional[requests.Session] = None):
        super().__init__(settings, session)
        self._coin_cache: Dict[str, Dict[str, CoinInfo]] = {}

    def fetch_server_time(self) -> int:
        """
        Get the MEXC server clock in milliseconds.

        Falls back to the local clock when the endpoint is unreachable.
        """
        try:
            response = self.session.request('GET', f"{self.base_url}/api/v3/time", timeout=self.timeout)
            return int(response.json()['serverTime'])
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Failed to get MEXC server time, using local time: {e}")
            return current_millis()

    def _signed_request(self, method: str, endpoint: str, credentials: ApiCredentials,
                        params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Make an authenticated MEXC request.

        Args:
            method: HTTP method
            endpoint: API path, e.g. ``/api/v3/account``
            credentials: Account credentials
            params: Request parameters, sent in the query string

        Returns:
            Decoded JSON payload

        Raises:
            AuthError: On credential or signature rejection
            NetworkError: On transport failure
            ApiError: On any other rejection or malformed response
        """
        all_params = dict(params or {})
        all_params['timestamp'] = self.fetch_server_time()

        query_string = build_query_string(all_params)
        signature = sign_query(query_string, credentials.api_secret)
        url = f"{self.base_url}{endpoint}?{query_string}&signature={signature}"

        self._log_request(method, endpoint, all_params)
        response = self._send(method, url, headers={'X-MEXC-APIKEY': credentials.api_key})

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.ok:
            message = self._error_message(payload, ('msg', 'message'), f"HTTP {response.status_code}")
            code = payload.get('code') if isinstance(payload, dict) else None
            raise classify_rejection(message, self.name, response.status_code, code)

        if payload is None:
            raise ApiError(
                f"Non-JSON response from {self.name} {endpoint}",
                exchange=self.name,
                status_code=response.status_code
            )

        # Some MEXC endpoints report rejections in a 200 body
        if isinstance(payload, dict) and payload.get('code') not in (None, 0, 200) and 'msg' in payload:
            raise classify_rejection(str(payload['msg']), self.name, response.status_code, payload['code'])

        return payload

    def fetch_balances(self, credentials: ApiCredentials) -> List[Balance]:
        """
        Retrieve spot balances, filtering out coins with nothing free or locked.

        Returns:
            List of Balance objects
        """
        data = self._signed_request('GET', '/api/v3/account', credentials)
        rows = data.get('balances') if isinstance(data, dict) else None
        if not isinstance(rows, list):
            raise ApiError(f"Unexpected account payload from {self.name}", exchange=self.name)
        return self._collect_balances(rows, 'asset', 'free', 'locked')

    def fetch_coin_networks(self, credentials: ApiCredentials) -> List[CoinInfo]:
        """
        Retrieve withdrawal configuration for every coin.

        Returns:
            List of CoinInfo objects; each network keeps both its display
            name and its wire code
        """
        data = self._signed_request('GET', '/api/v3/capital/config/getall', credentials)
        if not isinstance(data, list):
            raise ApiError(f"Unexpected coin configuration payload from {self.name}", exchange=self.name)

        try:
            coins = [
                CoinInfo(
                    coin=item['coin'],
                    name=item.get('name') or item['coin'],
                    networks=[self._parse_network(network) for network in item.get('networkList') or []]
                )
                for item in data
            ]
        except (KeyError, TypeError) as e:
            raise ApiError(f"Unexpected coin configuration payload from {self.name}: {e}", exchange=self.name) from e

        self._coin_cache[credentials.api_key] = {coin.coin.upper(): coin for coin in coins}
        self.logger.info(f"Retrieved network configuration for {len(coins)} {self.name} coins")
        return coins

    @staticmethod
    def _parse_network(network: Dict[str, Any]) -> NetworkInfo:
        return NetworkInfo(
            network=network['network'],
            network_code=network.get('netWork') or network['network'],
            withdraw_fee=str(network.get('withdrawFee', '')),
            min_withdraw=str(network.get('withdrawMin', '')),
            withdraw_enabled=bool(network.get('withdrawEnable', False))
        )

    def resolve_network_code(self, credentials: ApiCredentials, coin: str, network: str) -> str:
        """
        Translate a network display name (or code) into the MEXC wire code.

        Raises:
            ApiError: If the coin or network is unknown, or withdrawals are disabled on it
        """
        coins = self._coin_cache.get(credentials.api_key)
        if coins is None:
            self.fetch_coin_networks(credentials)
            coins = self._coin_cache.get(credentials.api_key, {})

        coin_info = coins.get(coin.upper())
        if coin_info is None:
            raise ApiError(f"Coin {coin} is not listed on {self.name}", exchange=self.name)

        network_info = coin_info.find_network(network)
        if network_info is None:
            raise ApiError(f"Network {network!r} is not available for {coin} on {self.name}", exchange=self.name)

        if not network_info.withdraw_enabled:
            raise ApiError(
                f"Withdrawals of {coin} on {network_info.network} are disabled on {self.name}",
                exchange=self.name
            )

        return network_info.network_code

    def _send_withdrawal(self, credentials: ApiCredentials, request: WithdrawalRequest) -> Optional[str]:
        network_code = None
        if request.network and request.network.strip():
            network_code = self.resolve_network_code(credentials, request.coin, request.network.strip())

        params = {
            'coin': request.coin,
            'netWork': network_code,
            'address': request.address,
            'amount': request.amount,
            'memo': request.memo,
            'remark': request.remark,
        }
        data = self._signed_request('POST', '/api/v3/capital/withdraw', credentials, params)
        withdraw_id = data.get('id') if isinstance(data, dict) else None
        return str(withdraw_id) if withdraw_id is not None else None
