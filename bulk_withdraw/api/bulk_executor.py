"""
Sequential bulk withdrawal execution.
"""
import logging
import time
from typing import Callable, Dict, List, Optional

from ..models.data_models import ApiCredentials, WithdrawalRequest, WithdrawalResult
from .base_client import ExchangeClient


class BulkWithdrawalExecutor:
    """
    Submits withdrawals one at a time with a fixed pause between them.

    Requests are never issued concurrently and never retried. Every request
    yields exactly one result, in input order, so a failed item never stops
    the rest of the batch.
    """

    def __init__(self, client: ExchangeClient, delay_seconds: Optional[float] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the executor.

        Args:
            client: Exchange client used for every submission
            delay_seconds: Pause between submissions; defaults to the client's own delay
            sleep: Sleep function, replaceable for testing
        """
        self.client = client
        self.delay_seconds = client.withdrawal_delay_seconds if delay_seconds is None else delay_seconds
        self._sleep = sleep
        self.logger = logging.getLogger(__name__)

    def execute_bulk(self, credentials: ApiCredentials,
                     requests: List[WithdrawalRequest]) -> List[WithdrawalResult]:
        """
        Submit every withdrawal in order.

        Args:
            credentials: Account credentials
            requests: Withdrawals to submit

        Returns:
            One WithdrawalResult per request, in the same order
        """
        total = len(requests)
        self.logger.info(
            f"Starting bulk withdrawal of {total} item(s) on {self.client.name} "
            f"with {self.delay_seconds}s between submissions"
        )

        results: List[WithdrawalResult] = []
        for index, request in enumerate(requests):
            result = self._submit(credentials, request)
            results.append(result)

            status = 'submitted' if result.success else f"failed: {result.error}"
            self.logger.info(f"Withdrawal {index + 1}/{total} ({request.amount} {request.coin}) {status}")

            if index < total - 1:
                self._sleep(self.delay_seconds)

        summary = summarize_results(results)
        self.logger.info(
            f"Bulk withdrawal finished: {summary['succeeded']} succeeded, {summary['failed']} failed"
        )
        return results

    def _submit(self, credentials: ApiCredentials, request: WithdrawalRequest) -> WithdrawalResult:
        try:
            return self.client.submit_withdrawal(credentials, request)
        except Exception as e:
            self.logger.error(f"Client raised while submitting withdrawal: {e}")
            return WithdrawalResult(
                success=False,
                address=request.address,
                amount=request.amount,
                coin=request.coin,
                error=str(e) or type(e).__name__
            )


def summarize_results(results: List[WithdrawalResult]) -> Dict[str, int]:
    succeeded = sum(1 for result in results if result.success)
    return {
        'total': len(results),
        'succeeded': succeeded,
        'failed': len(results) - succeeded,
    }
