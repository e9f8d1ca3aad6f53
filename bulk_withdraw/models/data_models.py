"""
Data models for the Crypto Bulk Withdrawal tool.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional


@dataclass
class ApiCredentials:
    """Exchange API credentials, passed explicitly into every operation."""
    api_key: str
    api_secret: str = field(repr=False)


@dataclass
class Balance:
    """Represents a spot balance for a single coin."""
    coin: str
    free: str
    locked: str
    total: str

    @classmethod
    def from_amounts(cls, coin: str, free: str, locked: str) -> 'Balance':
        """Build a balance, computing the total from free and locked."""
        total = Decimal(str(free)) + Decimal(str(locked))
        return cls(coin=coin, free=str(free), locked=str(locked), total=format(total, 'f'))

    @property
    def is_empty(self) -> bool:
        return Decimal(self.free) == 0 and Decimal(self.locked) == 0


@dataclass
class NetworkInfo:
    """Withdrawal configuration of a coin on one network."""
    network: str
    network_code: str
    withdraw_fee: str
    min_withdraw: str
    withdraw_enabled: bool


@dataclass
class CoinInfo:
    """A coin and the networks it can be withdrawn on."""
    coin: str
    name: str
    networks: List[NetworkInfo] = field(default_factory=list)

    def find_network(self, name: str) -> Optional[NetworkInfo]:
        """
        Look up a network by display name, falling back to the wire code.

        Args:
            name: Display name or wire network code

        Returns:
            The matching NetworkInfo, or None if the coin has no such network
        """
        for network in self.networks:
            if network.network == name:
                return network
        for network in self.networks:
            if network.network_code == name:
                return network
        return None


@dataclass
class WithdrawalRequest:
    """A single withdrawal to submit."""
    coin: str
    network: str
    address: str
    amount: str
    memo: Optional[str] = None
    remark: Optional[str] = None


@dataclass
class WithdrawalResult:
    """Outcome of one withdrawal, aligned with the request that produced it."""
    success: bool
    address: str
    amount: str
    coin: str
    tx_id: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None


@dataclass
class ExchangeSettings:
    """Connection and pacing settings for one exchange."""
    name: str
    base_url: str
    withdrawal_delay_seconds: float
    request_timeout_seconds: int = 10


@dataclass
class ExecutionConfig:
    """Configuration for application execution parameters."""
    request_timeout_seconds: int = 10
    log_file_path: str = "logs/bulk_withdraw.log"
    confirm_withdrawals: bool = True


def default_remark(now: Optional[datetime] = None) -> str:
    """Human-readable local timestamp used when a withdrawal has no remark."""
    return (now or datetime.now()).strftime('%Y-%m-%d %H:%M:%S')
