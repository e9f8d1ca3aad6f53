"""
Security validation utilities for credentials and withdrawal requests.
"""
import os
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, List

from ..models.data_models import ApiCredentials, WithdrawalRequest


class SecurityValidationError(Exception):
    """Raised when security validation fails."""
    pass


PLACEHOLDER_VALUES = ['your_api_key_here', 'your_api_secret_here', 'placeholder', 'changeme', 'demo']

MIN_CREDENTIAL_LENGTH = 16


def validate_withdrawal_request(request: WithdrawalRequest) -> bool:
    """
    Validate a single withdrawal request before it is sent.

    Args:
        request: Withdrawal to validate

    Returns:
        True if the request is well formed

    Raises:
        SecurityValidationError: If coin, address or amount is invalid
    """
    if not request.coin or not request.coin.strip():
        raise SecurityValidationError("Withdrawal coin is required")

    if not request.address or not request.address.strip():
        raise SecurityValidationError("Withdrawal address is required")

    try:
        amount = Decimal(str(request.amount).strip())
    except (InvalidOperation, ValueError):
        raise SecurityValidationError(f"Withdrawal amount is not a number: {request.amount!r}")

    if not amount.is_finite() or amount <= 0:
        raise SecurityValidationError(f"Withdrawal amount must be positive: {request.amount!r}")

    return True


class SecurityValidator:
    """
    Validates credentials, withdrawal batches, environment and API access.
    """

    def __init__(self):
        """Initialize the security validator."""
        self.logger = logging.getLogger(__name__)

    def validate_credentials(self, credentials: ApiCredentials, exchange: str) -> bool:
        """
        Validate API credentials format and basic structure.

        Args:
            credentials: ApiCredentials object to validate
            exchange: Exchange the credentials belong to

        Returns:
            True if credentials are valid format

        Raises:
            SecurityValidationError: If credentials are invalid
        """
        if not credentials.api_key or not credentials.api_secret:
            raise SecurityValidationError(f"{exchange} API key and secret are required")

        api_key = credentials.api_key.strip()
        api_secret = credentials.api_secret.strip()

        if api_key != credentials.api_key or api_secret != credentials.api_secret:
            raise SecurityValidationError(f"{exchange} credentials contain leading or trailing whitespace")

        if len(api_key) < MIN_CREDENTIAL_LENGTH:
            raise SecurityValidationError(
                f"{exchange} API key appears to be too short (minimum {MIN_CREDENTIAL_LENGTH} characters)"
            )

        if len(api_secret) < MIN_CREDENTIAL_LENGTH:
            raise SecurityValidationError(
                f"{exchange} API secret appears to be too short (minimum {MIN_CREDENTIAL_LENGTH} characters)"
            )

        if any(placeholder in api_key.lower() for placeholder in PLACEHOLDER_VALUES):
            raise SecurityValidationError(f"{exchange} API key appears to be a placeholder value")

        if any(placeholder in api_secret.lower() for placeholder in PLACEHOLDER_VALUES):
            raise SecurityValidationError(f"{exchange} API secret appears to be a placeholder value")

        if api_key.lower().startswith('test') or api_secret.lower().startswith('test'):
            self.logger.warning(f"{exchange} credentials appear to be test values")

        self.logger.info(f"{exchange} credentials format validation passed")
        return True

    def validate_withdrawal_batch(self, requests: List[WithdrawalRequest]) -> bool:
        """
        Validate every request of a batch before anything is submitted.

        Args:
            requests: Withdrawals to validate

        Returns:
            True if every request is valid

        Raises:
            SecurityValidationError: Listing every invalid item by position
        """
        if not requests:
            raise SecurityValidationError("No withdrawals to process")

        problems = []
        for index, request in enumerate(requests, start=1):
            try:
                validate_withdrawal_request(request)
            except SecurityValidationError as e:
                problems.append(f"#{index}: {e}")

        if problems:
            raise SecurityValidationError("Invalid withdrawals: " + "; ".join(problems))

        self.logger.info(f"Validated {len(requests)} withdrawal request(s)")
        return True

    def validate_environment_variables(self, exchange: str) -> bool:
        """
        Validate that the credential environment variables of an exchange are set.

        Returns:
            True if all required environment variables are valid

        Raises:
            SecurityValidationError: If required environment variables are missing or empty
        """
        from ..config.configuration_manager import CREDENTIAL_ENV_VARS

        required_env_vars = CREDENTIAL_ENV_VARS.get(exchange.lower())
        if required_env_vars is None:
            raise SecurityValidationError(f"Unsupported exchange: {exchange}")

        missing_vars = []
        empty_vars = []

        for var_name in required_env_vars:
            var_value = os.getenv(var_name)

            if var_value is None:
                missing_vars.append(var_name)
            elif len(var_value.strip()) == 0:
                empty_vars.append(var_name)

        if missing_vars:
            raise SecurityValidationError(
                f"Missing required environment variables: {', '.join(missing_vars)}"
            )

        if empty_vars:
            raise SecurityValidationError(
                f"Empty environment variables: {', '.join(empty_vars)}"
            )

        self.logger.info("Environment variables validation passed")
        return True

    def validate_api_access(self, client, credentials: ApiCredentials) -> bool:
        """
        Validate API access with an authenticated read.

        Args:
            client: ExchangeClient to test
            credentials: Credentials to test

        Returns:
            True if the exchange accepts the credentials

        Raises:
            SecurityValidationError: If authentication or the request fails
        """
        from ..api.errors import AuthError, ExchangeError

        try:
            client.fetch_balances(credentials)
        except AuthError as e:
            raise SecurityValidationError(f"{client.name} API authentication failed: {e}")
        except ExchangeError as e:
            raise SecurityValidationError(f"{client.name} API access error: {e}")

        self.logger.info(f"{client.name} API access validation completed successfully")
        return True

    def run_security_audit(self, exchange: str) -> Dict[str, any]:
        """
        Run a security audit of the configuration for one exchange.

        Returns:
            Dictionary containing audit results with status and details
        """
        audit_results = {
            'timestamp': None,
            'overall_status': 'UNKNOWN',
            'checks': [],
            'warnings': [],
            'errors': []
        }

        import datetime
        audit_results['timestamp'] = datetime.datetime.now().isoformat()

        # Check 1: Environment variables
        try:
            self.validate_environment_variables(exchange)
            audit_results['checks'].append({
                'name': 'Environment Variables',
                'status': 'PASS',
                'message': 'All required environment variables are set'
            })
        except SecurityValidationError as e:
            audit_results['checks'].append({
                'name': 'Environment Variables',
                'status': 'FAIL',
                'message': str(e)
            })
            audit_results['errors'].append(f"Environment Variables: {e}")

        # Check 2: Credential format validation
        try:
            from ..config.configuration_manager import ConfigurationManager
            config_manager = ConfigurationManager(enable_security_validation=False)
            credentials = config_manager.load_credentials(exchange)
            self.validate_credentials(credentials, exchange)

            audit_results['checks'].append({
                'name': 'Credential Format',
                'status': 'PASS',
                'message': 'Credentials have valid format'
            })
        except Exception as e:
            audit_results['checks'].append({
                'name': 'Credential Format',
                'status': 'FAIL',
                'message': str(e)
            })
            audit_results['errors'].append(f"Credential Format: {e}")

        # Check 3: Debug console logging prints to the terminal
        if os.getenv('BULK_WITHDRAW_DEBUG', '').lower() == 'true':
            audit_results['warnings'].append(
                'BULK_WITHDRAW_DEBUG is enabled; debug output is written to the console'
            )

        failed_checks = [check for check in audit_results['checks'] if check['status'] == 'FAIL']
        if failed_checks:
            audit_results['overall_status'] = 'FAIL'
        else:
            audit_results['overall_status'] = 'PASS'

        return audit_results
