"""
Unit tests for MexcClient with a mocked HTTP transport.
"""
import json
from unittest.mock import Mock, patch
from urllib.parse import parse_qsl, urlsplit

import pytest
import requests

from bulk_withdraw.api.errors import ApiError, AuthError, NetworkError
from bulk_withdraw.api.mexc_client import MexcClient
from bulk_withdraw.api.signer import sign_query
from bulk_withdraw.models.data_models import ApiCredentials, WithdrawalRequest

SERVER_TIME = 1700000000000

COIN_CONFIG = [
    {
        'coin': 'USDT',
        'name': 'TetherUS',
        'networkList': [
            {
                'network': 'BNB Smart Chain(BEP20)',
                'netWork': 'BEP20(BSC)',
                'withdrawFee': '0.8',
                'withdrawMin': '10',
                'withdrawEnable': True,
            },
            {
                'network': 'Tron(TRC20)',
                'netWork': 'TRX',
                'withdrawFee': '1',
                'withdrawMin': '10',
                'withdrawEnable': True,
            },
            {
                'network': 'Ethereum(ERC20)',
                'netWork': 'ETH',
                'withdrawFee': '3',
                'withdrawMin': '20',
                'withdrawEnable': False,
            },
        ],
    },
    {
        'coin': 'BTC',
        'name': 'Bitcoin',
        'networkList': [
            {'network': 'BTC', 'withdrawFee': '0.0002', 'withdrawMin': '0.001', 'withdrawEnable': True},
        ],
    },
    {'coin': 'NEW', 'name': 'New Coin', 'networkList': []},
]


def make_response(payload, status_code=200):
    """Build a real requests.Response carrying a JSON (or raw) body."""
    response = requests.Response()
    response.status_code = status_code
    response._content = payload if isinstance(payload, bytes) else json.dumps(payload).encode('utf-8')
    response.encoding = 'utf-8'
    return response


class FakeTransport:
    """Routes session.request calls by method and path, recording every call."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        route = self.routes[(method, urlsplit(url).path)]
        if callable(route) and not isinstance(route, requests.Response):
            route = route()
        if isinstance(route, Exception):
            raise route
        return route

    def calls_to(self, method, path):
        return [call for call in self.calls if call[0] == method and urlsplit(call[1]).path == path]


def query_params(url):
    return dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))


class TestMexcClient:
    """Test suite for MexcClient."""

    @pytest.fixture
    def credentials(self):
        return ApiCredentials(api_key='mx0vglAbCdEf1234567890', api_secret='a1b2c3d4e5f6a7b8c9d0e1f2a3b4c5d6')

    @pytest.fixture
    def transport(self):
        return FakeTransport({
            ('GET', '/api/v3/time'): make_response({'serverTime': SERVER_TIME}),
            ('GET', '/api/v3/account'): make_response({
                'balances': [
                    {'asset': 'USDT', 'free': '125.5', 'locked': '4.5'},
                    {'asset': 'BTC', 'free': '0', 'locked': '0.01'},
                    {'asset': 'ETH', 'free': '0.00000000', 'locked': '0.00000000'},
                    {'asset': 'MX', 'free': '3', 'locked': '0'},
                ]
            }),
            ('GET', '/api/v3/capital/config/getall'): make_response(COIN_CONFIG),
            ('POST', '/api/v3/capital/withdraw'): make_response({'id': 'a1b2c3'}),
        })

    @pytest.fixture
    def client(self, transport):
        session = Mock(spec=requests.Session)
        session.request.side_effect = transport
        return MexcClient(session=session)

    def test_defaults(self, client):
        assert client.name == 'MEXC'
        assert client.base_url == 'https://api.mexc.com'
        assert client.withdrawal_delay_seconds == 1.0

    def test_fetch_balances_filters_zero_balances(self, client, credentials):
        balances = client.fetch_balances(credentials)

        assert [balance.coin for balance in balances] == ['USDT', 'BTC', 'MX']

        usdt = balances[0]
        assert usdt.free == '125.5'
        assert usdt.locked == '4.5'
        assert usdt.total == '130.0'

        btc = balances[1]
        assert btc.total == '0.01'

    def test_signed_request_uses_server_time_and_query_signature(self, client, transport, credentials):
        client.fetch_balances(credentials)

        method, url, kwargs = transport.calls_to('GET', '/api/v3/account')[0]
        query = urlsplit(url).query
        unsigned, _, signature = query.rpartition('&signature=')

        assert unsigned == f'timestamp={SERVER_TIME}'
        assert signature == sign_query(unsigned, credentials.api_secret)
        assert kwargs['headers'] == {'X-MEXC-APIKEY': credentials.api_key}
        assert 'timeout' in kwargs

    def test_server_time_falls_back_to_local_clock(self, client, transport, credentials):
        transport.routes[('GET', '/api/v3/time')] = requests.ConnectionError('unreachable')

        with patch('bulk_withdraw.api.mexc_client.current_millis', return_value=1234567890123):
            client.fetch_balances(credentials)

        url = transport.calls_to('GET', '/api/v3/account')[0][1]
        assert query_params(url)['timestamp'] == '1234567890123'

    def test_fetch_server_time(self, client):
        assert client.fetch_server_time() == SERVER_TIME

    def test_fetch_coin_networks_maps_display_name_and_wire_code(self, client, credentials):
        coins = client.fetch_coin_networks(credentials)

        assert [coin.coin for coin in coins] == ['USDT', 'BTC', 'NEW']

        bep20 = coins[0].networks[0]
        assert bep20.network == 'BNB Smart Chain(BEP20)'
        assert bep20.network_code == 'BEP20(BSC)'
        assert bep20.withdraw_fee == '0.8'
        assert bep20.min_withdraw == '10'
        assert bep20.withdraw_enabled is True

        # netWork missing: the display name doubles as the code
        assert coins[1].networks[0].network_code == 'BTC'
        assert coins[2].networks == []

    def test_withdrawal_uses_wire_network_code(self, client, transport, credentials):
        request = WithdrawalRequest(
            coin='USDT',
            network='BNB Smart Chain(BEP20)',
            address='0x1234567890abcdef1234567890abcdef12345678',
            amount='25',
            remark='2024-05-01 12:00:00'
        )

        result = client.submit_withdrawal(credentials, request)

        assert result.success is True
        assert result.tx_id == 'a1b2c3'
        assert result.message == 'Withdrawal submitted successfully'
        assert result.address == request.address
        assert result.amount == '25'
        assert result.coin == 'USDT'

        url = transport.calls_to('POST', '/api/v3/capital/withdraw')[0][1]
        assert 'netWork=BEP20(BSC)' in url
        assert 'BNB%20Smart' not in url

        params = query_params(url)
        assert params['coin'] == 'USDT'
        assert params['netWork'] == 'BEP20(BSC)'
        assert params['address'] == request.address
        assert params['amount'] == '25'
        assert params['remark'] == '2024-05-01 12:00:00'
        assert 'memo' not in params
        assert params['timestamp'] == str(SERVER_TIME)

        unsigned, _, signature = urlsplit(url).query.rpartition('&signature=')
        assert signature == sign_query(unsigned, credentials.api_secret)

    def test_withdrawal_accepts_wire_code_directly(self, client, transport, credentials):
        request = WithdrawalRequest(coin='USDT', network='TRX', address='TXabc', amount='10', memo='1234')

        result = client.submit_withdrawal(credentials, request)

        assert result.success is True
        params = query_params(transport.calls_to('POST', '/api/v3/capital/withdraw')[0][1])
        assert params['netWork'] == 'TRX'
        assert params['memo'] == '1234'

    def test_withdrawal_without_network_omits_network_code(self, client, transport, credentials):
        request = WithdrawalRequest(coin='USDT', network='', address='Txyz', amount='10')

        result = client.submit_withdrawal(credentials, request)

        assert result.success is True
        params = query_params(transport.calls_to('POST', '/api/v3/capital/withdraw')[0][1])
        assert 'netWork' not in params
        assert params['coin'] == 'USDT'
        assert params['address'] == 'Txyz'
        assert transport.calls_to('GET', '/api/v3/capital/config/getall') == []

    def test_coin_configuration_loaded_once(self, client, transport, credentials):
        request = WithdrawalRequest(coin='USDT', network='Tron(TRC20)', address='TXabc', amount='10')

        client.submit_withdrawal(credentials, request)
        client.submit_withdrawal(credentials, request)

        assert len(transport.calls_to('GET', '/api/v3/capital/config/getall')) == 1
        assert len(transport.calls_to('POST', '/api/v3/capital/withdraw')) == 2

    def test_unknown_network_fails_without_submitting(self, client, transport, credentials):
        request = WithdrawalRequest(coin='USDT', network='Solana', address='abc', amount='10')

        result = client.submit_withdrawal(credentials, request)

        assert result.success is False
        assert 'Solana' in result.error
        assert transport.calls_to('POST', '/api/v3/capital/withdraw') == []

    def test_disabled_network_fails_without_submitting(self, client, transport, credentials):
        request = WithdrawalRequest(coin='USDT', network='Ethereum(ERC20)', address='0xabc', amount='50')

        result = client.submit_withdrawal(credentials, request)

        assert result.success is False
        assert 'disabled' in result.error
        assert transport.calls_to('POST', '/api/v3/capital/withdraw') == []

    def test_rejected_withdrawal_returns_failure(self, client, transport, credentials):
        transport.routes[('POST', '/api/v3/capital/withdraw')] = make_response(
            {'code': 30004, 'msg': 'Insufficient balance'}, status_code=400
        )
        request = WithdrawalRequest(coin='USDT', network='TRX', address='TXabc', amount='100000')

        result = client.submit_withdrawal(credentials, request)

        assert result.success is False
        assert result.error == 'Insufficient balance'
        assert result.tx_id is None

    def test_non_json_error_returns_failure(self, client, transport, credentials):
        transport.routes[('POST', '/api/v3/capital/withdraw')] = make_response(b'<html>Bad Gateway</html>', 502)
        request = WithdrawalRequest(coin='USDT', network='TRX', address='TXabc', amount='10')

        result = client.submit_withdrawal(credentials, request)

        assert result.success is False
        assert result.error == 'HTTP 502'

    def test_network_failure_during_withdrawal_returns_failure(self, client, transport, credentials):
        transport.routes[('POST', '/api/v3/capital/withdraw')] = requests.Timeout('read timed out')
        request = WithdrawalRequest(coin='USDT', network='TRX', address='TXabc', amount='10')

        result = client.submit_withdrawal(credentials, request)

        assert result.success is False
        assert result.error == 'POST request to MEXC failed: Timeout (api.mexc.com)'

    def test_network_error_hides_signed_url(self, client, transport, credentials):
        signed_url = 'https://api.mexc.com/api/v3/capital/withdraw?timestamp=1&signature=' + 'ab' * 32
        transport.routes[('POST', '/api/v3/capital/withdraw')] = requests.ConnectionError(
            f"Max retries exceeded with url: {signed_url}"
        )
        request = WithdrawalRequest(coin='USDT', network='TRX', address='TXabc', amount='10')

        result = client.submit_withdrawal(credentials, request)

        assert result.success is False
        assert 'signature' not in result.error
        assert 'ab' * 32 not in result.error
        assert 'ConnectionError (api.mexc.com)' in result.error

    def test_invalid_amount_is_rejected_locally(self, client, transport, credentials):
        request = WithdrawalRequest(coin='USDT', network='TRX', address='TXabc', amount='-5')

        result = client.submit_withdrawal(credentials, request)

        assert result.success is False
        assert 'positive' in result.error
        assert transport.calls == []

    def test_signature_rejection_raises_auth_error(self, client, transport, credentials):
        transport.routes[('GET', '/api/v3/account')] = make_response(
            {'code': 700002, 'msg': 'Signature for this request is not valid.'}, status_code=400
        )

        with pytest.raises(AuthError) as exc_info:
            client.fetch_balances(credentials)

        assert exc_info.value.code == 700002
        assert exc_info.value.status_code == 400
        assert exc_info.value.retriable is False

    def test_forbidden_raises_auth_error(self, client, transport, credentials):
        transport.routes[('GET', '/api/v3/capital/config/getall')] = make_response({'msg': 'denied'}, 403)

        with pytest.raises(AuthError):
            client.fetch_coin_networks(credentials)

    def test_business_error_raises_api_error(self, client, transport, credentials):
        transport.routes[('GET', '/api/v3/account')] = make_response({'code': 10001, 'msg': 'user does not exist'}, 400)

        with pytest.raises(ApiError, match='user does not exist'):
            client.fetch_balances(credentials)

    def test_connection_error_raises_network_error(self, client, transport, credentials):
        transport.routes[('GET', '/api/v3/account')] = requests.ConnectionError('connection refused')

        with pytest.raises(NetworkError) as exc_info:
            client.fetch_balances(credentials)

        assert exc_info.value.retriable is True

    def test_malformed_account_payload_raises_api_error(self, client, transport, credentials):
        transport.routes[('GET', '/api/v3/account')] = make_response({'unexpected': True})

        with pytest.raises(ApiError):
            client.fetch_balances(credentials)

    def test_validate_connection(self, client, transport, credentials):
        assert client.validate_connection(credentials) is True

        transport.routes[('GET', '/api/v3/account')] = make_response({'msg': 'Api key info invalid'}, 400)
        assert client.validate_connection(credentials) is False

    def test_request_logging_never_contains_secrets(self, client, credentials, caplog):
        caplog.set_level('DEBUG', logger='bulk_withdraw')

        client.fetch_balances(credentials)
        client.submit_withdrawal(
            credentials, WithdrawalRequest(coin='USDT', network='TRX', address='TXabc', amount='10')
        )

        assert credentials.api_secret not in caplog.text
        assert credentials.api_key not in caplog.text
        assert 'signature=' not in caplog.text
