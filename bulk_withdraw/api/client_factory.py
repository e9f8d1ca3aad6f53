"""
Exchange client selection by configured exchange name.
"""
from typing import Dict, Optional, Type

import requests

from ..models.data_models import ExchangeSettings
from .base_client import ExchangeClient
from .coinex_client import CoinexClient
from .mexc_client import MexcClient

CLIENT_CLASSES: Dict[str, Type[ExchangeClient]] = {
    'mexc': MexcClient,
    'coinex': CoinexClient,
}

SUPPORTED_EXCHANGES = tuple(CLIENT_CLASSES)


def create_client(exchange: str, settings: Optional[ExchangeSettings] = None,
                  session: Optional[requests.Session] = None) -> ExchangeClient:
    """
    Create the client for an exchange.

    Args:
        exchange: Exchange name, case-insensitive (``mexc`` or ``coinex``)
        settings: Optional connection settings
        session: Optional HTTP session

    Returns:
        ExchangeClient implementation for the exchange

    Raises:
        ValueError: If the exchange is not supported
    """
    key = exchange.strip().lower()
    if key not in CLIENT_CLASSES:
        raise ValueError(
            f"Unsupported exchange: {exchange}. Supported: {', '.join(SUPPORTED_EXCHANGES)}"
        )
    return CLIENT_CLASSES[key](settings=settings, session=session)
