"""
Configuration manager for handling environment variables and credential loading.
"""
import os
import logging
from typing import Dict, Optional, Tuple

from ..models.data_models import ApiCredentials, ExchangeSettings, ExecutionConfig
from ..utils.security_validator import SecurityValidator, SecurityValidationError


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""
    pass


CREDENTIAL_ENV_VARS: Dict[str, Tuple[str, str]] = {
    'mexc': ('MEXC_API_KEY', 'MEXC_API_SECRET'),
    'coinex': ('COINEX_ACCESS_ID', 'COINEX_SECRET_KEY'),
}

EXCHANGE_DEFAULTS: Dict[str, Dict[str, str]] = {
    'mexc': {
        'name': 'MEXC',
        'base_url_var': 'MEXC_API_BASE',
        'base_url': 'https://api.mexc.com',
        'delay_var': 'MEXC_WITHDRAW_DELAY_SECONDS',
        'delay': '1.0',
    },
    'coinex': {
        'name': 'CoinEx',
        'base_url_var': 'COINEX_API_BASE',
        'base_url': 'https://api.coinex.com/v2',
        'delay_var': 'COINEX_WITHDRAW_DELAY_SECONDS',
        'delay': '1.5',
    },
}


class ConfigurationManager:
    """Manages secure loading and validation of application configuration."""

    def __init__(self, enable_security_validation: bool = True):
        """
        Initialize the configuration manager.

        Args:
            enable_security_validation: Whether to enable comprehensive security validation
        """
        self._credentials: Optional[ApiCredentials] = None
        self._exchange_settings: Optional[ExchangeSettings] = None
        self._execution_config: Optional[ExecutionConfig] = None
        self._security_validator = SecurityValidator() if enable_security_validation else None
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _exchange_key(exchange: str) -> str:
        key = (exchange or '').strip().lower()
        if key not in CREDENTIAL_ENV_VARS:
            raise ConfigurationError(
                f"Unsupported exchange: {exchange}. Supported: {', '.join(CREDENTIAL_ENV_VARS)}"
            )
        return key

    def load_credentials(self, exchange: str) -> ApiCredentials:
        """
        Load exchange API credentials from environment variables.

        Args:
            exchange: Exchange name (``mexc`` or ``coinex``)

        Returns:
            ApiCredentials: The loaded credentials

        Raises:
            ConfigurationError: If credentials are missing or invalid
        """
        key_var, secret_var = CREDENTIAL_ENV_VARS[self._exchange_key(exchange)]
        api_key = os.getenv(key_var)
        api_secret = os.getenv(secret_var)

        if not api_key:
            raise ConfigurationError(f"{key_var} environment variable is required")

        if not api_secret:
            raise ConfigurationError(f"{secret_var} environment variable is required")

        if len(api_key.strip()) == 0:
            raise ConfigurationError(f"{key_var} cannot be empty")

        if len(api_secret.strip()) == 0:
            raise ConfigurationError(f"{secret_var} cannot be empty")

        self._credentials = ApiCredentials(
            api_key=api_key.strip(),
            api_secret=api_secret.strip()
        )

        return self._credentials

    def get_execution_config(self) -> ExecutionConfig:
        """
        Get execution configuration with defaults and environment overrides.

        Returns:
            ExecutionConfig: The execution configuration
        """
        try:
            timeout_seconds = int(os.getenv('REQUEST_TIMEOUT_SECONDS', '10'))
        except ValueError:
            raise ConfigurationError("REQUEST_TIMEOUT_SECONDS must be an integer")

        log_file_path = os.getenv('LOG_FILE_PATH', 'logs/bulk_withdraw.log')
        confirm = os.getenv('CONFIRM_WITHDRAWALS', 'true').lower() != 'false'

        if timeout_seconds < 1:
            raise ConfigurationError("REQUEST_TIMEOUT_SECONDS must be at least 1 second")

        if timeout_seconds > 120:
            raise ConfigurationError("REQUEST_TIMEOUT_SECONDS must be 120 seconds or less")

        self._execution_config = ExecutionConfig(
            request_timeout_seconds=timeout_seconds,
            log_file_path=log_file_path,
            confirm_withdrawals=confirm
        )

        return self._execution_config

    def get_exchange_settings(self, exchange: str) -> ExchangeSettings:
        """
        Get connection and pacing settings for an exchange.

        Args:
            exchange: Exchange name

        Returns:
            ExchangeSettings: Base URL, withdrawal delay and request timeout

        Raises:
            ConfigurationError: If an override is invalid
        """
        defaults = EXCHANGE_DEFAULTS[self._exchange_key(exchange)]
        base_url = os.getenv(defaults['base_url_var'], defaults['base_url']).strip()
        delay_value = os.getenv(defaults['delay_var'], defaults['delay'])

        if not base_url.startswith(('https://', 'http://')):
            raise ConfigurationError(f"{defaults['base_url_var']} must be an http(s) URL")

        try:
            delay_seconds = float(delay_value)
        except ValueError:
            raise ConfigurationError(f"{defaults['delay_var']} must be a number")

        if delay_seconds < 0:
            raise ConfigurationError(f"{defaults['delay_var']} must be non-negative")

        if delay_seconds > 60:
            raise ConfigurationError(f"{defaults['delay_var']} must be 60 seconds or less")

        execution_config = self._execution_config or self.get_execution_config()

        self._exchange_settings = ExchangeSettings(
            name=defaults['name'],
            base_url=base_url,
            withdrawal_delay_seconds=delay_seconds,
            request_timeout_seconds=execution_config.request_timeout_seconds
        )

        return self._exchange_settings

    def validate_configuration(self, exchange: str) -> bool:
        """
        Validate all configuration components for an exchange.

        Returns:
            bool: True if all configuration is valid

        Raises:
            ConfigurationError: If any configuration is invalid
        """
        try:
            credentials = self.load_credentials(exchange)
            self.get_execution_config()
            self.get_exchange_settings(exchange)

            if self._security_validator:
                self.logger.info("Running credential security validation...")

                try:
                    self._security_validator.validate_environment_variables(exchange)
                    self._security_validator.validate_credentials(credentials, exchange)
                except SecurityValidationError as e:
                    raise ConfigurationError(f"Credential validation failed: {e}")

            self.logger.info("Configuration validation completed successfully")
            return True

        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Unexpected error during configuration validation: {str(e)}")

    def validate_startup_security(self, exchange: str) -> bool:
        """
        Run startup security validation with clear error messages.

        Returns:
            bool: True if startup security validation passes

        Raises:
            ConfigurationError: If security validation fails with detailed error message
        """
        if not self._security_validator:
            self.logger.warning("Security validation is disabled")
            return True

        try:
            self.logger.info("Running startup security validation...")
            audit_results = self._security_validator.run_security_audit(exchange)

            if audit_results['overall_status'] == 'PASS':
                self.logger.info("Startup security validation passed")

                for warning in audit_results['warnings']:
                    self.logger.warning(f"Security warning: {warning}")

                return True

            error_messages = ["Startup security validation failed:"]
            for check in audit_results['checks']:
                if check['status'] == 'FAIL':
                    error_messages.append(f"  - {check['name']}: {check['message']}")

            error_messages.append("\nTo fix these issues:")
            error_messages.append("  1. Check your environment variables (.env file)")
            error_messages.append("  2. Use API keys with withdrawal permission and an IP whitelist")

            raise ConfigurationError("\n".join(error_messages))

        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Unexpected error during startup security validation: {e}")

    @property
    def credentials(self) -> Optional[ApiCredentials]:
        """Get cached credentials."""
        return self._credentials

    @property
    def exchange_settings(self) -> Optional[ExchangeSettings]:
        """Get cached exchange settings."""
        return self._exchange_settings

    @property
    def execution_config(self) -> Optional[ExecutionConfig]:
        """Get cached execution configuration."""
        return self._execution_config
