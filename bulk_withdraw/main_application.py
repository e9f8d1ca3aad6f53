"""
Main application orchestrator for the Crypto Bulk Withdrawal tool.

This module coordinates all components for one command-line run:
configuration → client setup → balance / coin listing or bulk withdrawal
"""
import argparse
import json
import os
import sys
import time
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .config.configuration_manager import ConfigurationManager, ConfigurationError, EXCHANGE_DEFAULTS
from .api import BulkWithdrawalExecutor, ExchangeClient, ExchangeError, create_client, summarize_results
from .utils.error_handler import ErrorHandler, ErrorCategory
from .utils.security_validator import SecurityValidator, SecurityValidationError
from .models.data_models import ApiCredentials, Balance, CoinInfo, WithdrawalRequest, WithdrawalResult, default_remark

VERSION = '1.0.0'

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL_FAILURE = 2
EXIT_UNEXPECTED = 3
EXIT_INTERRUPTED = 130


class ApplicationError(Exception):
    """Base exception for application-level errors."""
    pass


class MainApplication:
    """
    Main application orchestrator that coordinates all components.

    Loads configuration and credentials for one exchange, builds the client
    and the bulk executor, and runs the requested operation.
    """

    def __init__(self, exchange: str, config_overrides: Optional[Dict[str, Any]] = None):
        """
        Initialize the main application.

        Args:
            exchange: Exchange to operate on (``mexc`` or ``coinex``)
            config_overrides: Optional configuration overrides from command line
        """
        self.exchange = exchange.lower()
        self.config_overrides = config_overrides or {}

        self.config_manager: Optional[ConfigurationManager] = None
        self.error_handler: Optional[ErrorHandler] = None
        self.security_validator = SecurityValidator()
        self.client: Optional[ExchangeClient] = None
        self.executor: Optional[BulkWithdrawalExecutor] = None
        self.credentials: Optional[ApiCredentials] = None

    def _apply_config_overrides(self) -> None:
        """Apply command-line configuration overrides to environment."""
        override_mapping = {
            'timeout': 'REQUEST_TIMEOUT_SECONDS',
            'log_file': 'LOG_FILE_PATH',
        }
        defaults = EXCHANGE_DEFAULTS.get(self.exchange)
        if defaults:
            override_mapping['delay'] = defaults['delay_var']

        for arg_name, env_var in override_mapping.items():
            if self.config_overrides.get(arg_name) is not None:
                os.environ[env_var] = str(self.config_overrides[arg_name])

    def _initialize_components(self) -> None:
        """
        Initialize all application components.

        Raises:
            ApplicationError: If component initialization fails
        """
        try:
            self._apply_config_overrides()

            self.config_manager = ConfigurationManager()

            # Error handler first so everything after is logged
            execution_config = self.config_manager.get_execution_config()
            self.error_handler = ErrorHandler(execution_config.log_file_path)

            self.error_handler.log_info(f"Initializing components for {self.exchange}...")

            self.config_manager.validate_configuration(self.exchange)
            self.config_manager.validate_startup_security(self.exchange)
            self.error_handler.log_info("Configuration validation successful")

            self.credentials = self.config_manager.credentials
            settings = self.config_manager.exchange_settings
            self.client = create_client(self.exchange, settings)
            self.executor = BulkWithdrawalExecutor(self.client)

            if os.getenv('VALIDATE_API_ON_STARTUP', 'false').lower() == 'true':
                self.security_validator.validate_api_access(self.client, self.credentials)
                self.error_handler.log_info(f"{self.client.name} API access validated")

            self.error_handler.log_info(
                f"{self.client.name} client initialized "
                f"({self.executor.delay_seconds}s between withdrawals)"
            )

        except (ConfigurationError, SecurityValidationError) as e:
            error_msg = f"Configuration error during initialization: {str(e)}"
            if self.error_handler:
                self.error_handler.log_execution_failure(e, ErrorCategory.CONFIGURATION)
            raise ApplicationError(error_msg) from e

        except Exception as e:
            error_msg = f"Unexpected error during initialization: {str(e)}"
            if self.error_handler:
                self.error_handler.log_execution_failure(e, ErrorCategory.SYSTEM)
            raise ApplicationError(error_msg) from e

    def fetch_balances(self) -> List[Balance]:
        """
        Fetch the account's nonzero balances.

        Raises:
            ApplicationError: If the exchange request fails
        """
        start_time = time.time()
        try:
            balances = self.client.fetch_balances(self.credentials)
        except ExchangeError as e:
            self.error_handler.log_api_call(self.client.name, 'fetch_balances', False, time.time() - start_time)
            self.error_handler.handle_api_error(e, self.client.name, 'fetch_balances')
            raise ApplicationError(f"Failed to fetch {self.client.name} balances: {e}") from e

        self.error_handler.log_api_call(self.client.name, 'fetch_balances', True, time.time() - start_time)
        return balances

    def fetch_coins(self, coin: Optional[str] = None) -> List[CoinInfo]:
        """
        Fetch coin network configuration, optionally for a single coin.

        Raises:
            ApplicationError: If the exchange request fails
        """
        start_time = time.time()
        try:
            coins = self.client.fetch_coin_networks(self.credentials)
        except ExchangeError as e:
            self.error_handler.log_api_call(self.client.name, 'fetch_coin_networks', False, time.time() - start_time)
            self.error_handler.handle_api_error(e, self.client.name, 'fetch_coin_networks')
            raise ApplicationError(f"Failed to fetch {self.client.name} coin networks: {e}") from e

        self.error_handler.log_api_call(self.client.name, 'fetch_coin_networks', True, time.time() - start_time)
        if coin:
            coins = [info for info in coins if info.coin.upper() == coin.upper()]
        return coins

    def execute_withdrawals(self, requests: List[WithdrawalRequest]) -> List[WithdrawalResult]:
        """
        Validate and submit a withdrawal batch.

        Raises:
            ApplicationError: If the batch fails validation
        """
        try:
            self.security_validator.validate_withdrawal_batch(requests)
        except SecurityValidationError as e:
            self.error_handler.log_execution_failure(e, ErrorCategory.VALIDATION)
            raise ApplicationError(str(e)) from e

        results = self.executor.execute_bulk(self.credentials, requests)
        for _ in results:
            self.error_handler.execution_metrics.add_api_call(self.client.name)
        return results

    def _confirm(self, requests: List[WithdrawalRequest]) -> bool:
        print(f"About to withdraw on {self.client.name}:")
        for index, request in enumerate(requests, start=1):
            memo = f" memo={request.memo}" if request.memo else ''
            print(f"  {index}. {request.amount} {request.coin} via {request.network} to {request.address}{memo}")
        try:
            answer = input(f"Are you sure you want to withdraw to {len(requests)} address(es)? [y/N] ")
        except EOFError:
            print()
            return False
        return answer.strip().lower() in ('y', 'yes')

    def run(self, operation: str, requests: Optional[List[WithdrawalRequest]] = None,
            coin: Optional[str] = None, dry_run: bool = False, assume_yes: bool = False) -> int:
        """
        Run one operation.

        Args:
            operation: ``balances``, ``coins`` or ``withdraw``
            requests: Withdrawals to submit for ``withdraw``
            coin: Coin filter for ``coins``
            dry_run: Validate configuration and requests without submitting
            assume_yes: Skip the interactive confirmation

        Returns:
            int: Exit code
        """
        exit_code = EXIT_OK

        try:
            self._initialize_components()
            self.error_handler.log_execution_start(self.client.name, operation)

            if operation == 'balances':
                balances = self.fetch_balances()
                print(json.dumps([asdict(balance) for balance in balances], indent=2))
                self.error_handler.log_execution_success(operation)

            elif operation == 'coins':
                coins = self.fetch_coins(coin)
                print(json.dumps([asdict(info) for info in coins], indent=2))
                self.error_handler.log_execution_success(operation)

            elif operation == 'withdraw':
                requests = requests or []

                if dry_run:
                    self.security_validator.validate_withdrawal_batch(requests)
                    print(f"DRY RUN: {len(requests)} withdrawal(s) validated, nothing submitted")
                    self.error_handler.log_execution_success('withdraw (dry run)')
                    return EXIT_OK

                needs_confirmation = self.config_manager.execution_config.confirm_withdrawals
                if needs_confirmation and not assume_yes and not self._confirm(requests):
                    print("Cancelled, nothing submitted")
                    self.error_handler.log_info("Withdrawal batch cancelled by user")
                    return EXIT_OK

                results = self.execute_withdrawals(requests)
                print(json.dumps([asdict(result) for result in results], indent=2))
                self.error_handler.log_execution_success(operation, results)

                summary = summarize_results(results)
                print(f"SUMMARY: {summary['succeeded']} succeeded, {summary['failed']} failed "
                      f"of {summary['total']} withdrawal(s)", file=sys.stderr)
                if summary['failed']:
                    exit_code = EXIT_PARTIAL_FAILURE

            else:
                raise ApplicationError(f"Unknown operation: {operation}")

        except (ApplicationError, SecurityValidationError) as e:
            print(f"ERROR: {str(e)}", file=sys.stderr)
            exit_code = EXIT_ERROR

        except Exception as e:
            if self.error_handler:
                self.error_handler.log_execution_failure(e, ErrorCategory.UNKNOWN)
            print(f"CRITICAL ERROR: Unexpected application error: {str(e)}", file=sys.stderr)
            exit_code = EXIT_UNEXPECTED

        return exit_code


def parse_withdrawal_item(value: str) -> WithdrawalRequest:
    """
    Parse ``COIN,NETWORK,ADDRESS,AMOUNT[,MEMO[,REMARK]]`` into a request.

    An omitted remark defaults to the current local date and time.

    Raises:
        argparse.ArgumentTypeError: If the item does not have 4 to 6 fields
    """
    fields = [part.strip() for part in value.split(',')]
    if not 4 <= len(fields) <= 6:
        raise argparse.ArgumentTypeError(
            f"expected COIN,NETWORK,ADDRESS,AMOUNT[,MEMO[,REMARK]], got {value!r}"
        )

    coin, network, address, amount = fields[:4]
    memo = fields[4] if len(fields) > 4 and fields[4] else None
    remark = fields[5] if len(fields) > 5 and fields[5] else default_remark()

    return WithdrawalRequest(
        coin=coin.upper(),
        network=network,
        address=address,
        amount=amount,
        memo=memo,
        remark=remark
    )


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create command-line argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog='bulk-withdraw',
        description='Crypto Bulk Withdrawal - sequential withdrawals from MEXC and CoinEx accounts',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --exchange mexc --balances
  %(prog)s --exchange mexc --coins --coin USDT
  %(prog)s --exchange coinex --withdraw USDT,TRC20,TXyz...,25 --withdraw USDT,TRC20,TAbc...,10
  %(prog)s --exchange mexc --withdraw "USDT,BNB Smart Chain(BEP20),0xabc...,15" --dry-run

Credentials are read from MEXC_API_KEY / MEXC_API_SECRET or
COINEX_ACCESS_ID / COINEX_SECRET_KEY.
        """
    )

    parser.add_argument(
        '--exchange',
        required=True,
        choices=sorted(EXCHANGE_DEFAULTS),
        type=str.lower,
        help='Exchange to operate on'
    )

    operation = parser.add_mutually_exclusive_group(required=True)
    operation.add_argument(
        '--balances',
        action='store_true',
        help='Print nonzero balances as JSON'
    )
    operation.add_argument(
        '--coins',
        action='store_true',
        help='Print coin withdrawal networks as JSON'
    )
    operation.add_argument(
        '--withdraw',
        action='append',
        type=parse_withdrawal_item,
        metavar='COIN,NETWORK,ADDRESS,AMOUNT[,MEMO[,REMARK]]',
        help='Withdrawal to submit; repeat for a batch (processed in order)'
    )

    parser.add_argument(
        '--coin',
        type=str,
        metavar='SYMBOL',
        help='Limit --coins output to one coin'
    )

    parser.add_argument(
        '--timeout',
        type=int,
        metavar='SECONDS',
        help='HTTP request timeout in seconds (default: from config or 10)'
    )

    parser.add_argument(
        '--delay',
        type=float,
        metavar='SECONDS',
        help='Pause between withdrawals (default: 1.0 for MEXC, 1.5 for CoinEx)'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        metavar='PATH',
        help='Path to log file (default: from config or logs/bulk_withdraw.log)'
    )

    parser.add_argument(
        '--env-file',
        type=str,
        default='.env',
        metavar='PATH',
        help='Environment file to load; variables already set take precedence (default: .env)'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Validate configuration and withdrawals without submitting'
    )

    parser.add_argument(
        '--yes',
        action='store_true',
        help='Do not ask for confirmation before submitting withdrawals'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'Crypto Bulk Withdrawal {VERSION}'
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the application.

    Returns:
        int: Exit code
    """
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if os.path.isfile(args.env_file):
        load_dotenv(args.env_file, override=False)

    config_overrides = {
        'timeout': args.timeout,
        'delay': args.delay,
        'log_file': args.log_file,
    }

    if args.balances:
        operation = 'balances'
    elif args.coins:
        operation = 'coins'
    else:
        operation = 'withdraw'

    try:
        app = MainApplication(args.exchange, config_overrides)
        return app.run(
            operation,
            requests=args.withdraw,
            coin=args.coin,
            dry_run=args.dry_run,
            assume_yes=args.yes
        )
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return EXIT_INTERRUPTED


if __name__ == '__main__':
    sys.exit(main())
