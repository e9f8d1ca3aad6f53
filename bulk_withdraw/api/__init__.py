"""
Exchange API clients and bulk withdrawal execution.
"""
from .base_client import ExchangeClient
from .bulk_executor import BulkWithdrawalExecutor, summarize_results
from .client_factory import SUPPORTED_EXCHANGES, create_client
from .coinex_client import CoinexClient
from .errors import ApiError, AuthError, ExchangeError, NetworkError
from .mexc_client import MexcClient

__all__ = [
    'ExchangeClient', 'MexcClient', 'CoinexClient', 'BulkWithdrawalExecutor',
    'summarize_results', 'create_client', 'SUPPORTED_EXCHANGES',
    'ExchangeError', 'AuthError', 'NetworkError', 'ApiError'
]
