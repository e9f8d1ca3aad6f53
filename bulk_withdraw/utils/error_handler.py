"""
Error handling and logging system for the Crypto Bulk Withdrawal tool.

This module provides error categorization, structured logging with
credential redaction, and execution metrics collection.
"""

import logging
import logging.handlers
import os
import re
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from enum import Enum

from ..api.errors import ApiError, AuthError, ExchangeError, NetworkError
from ..models.data_models import WithdrawalResult
from .security_validator import SecurityValidationError


class ErrorCategory(Enum):
    """Categories of errors for structured handling."""
    CONFIGURATION = "configuration"
    API_ERROR = "api_error"
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    SYSTEM = "system"
    UNKNOWN = "unknown"


class LogLevel(Enum):
    """Log levels for structured logging."""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


# Sensitive patterns to sanitize from logs
SENSITIVE_PATTERNS = [
    (re.compile(r'api[_-]?key["\'\s]*[:=]["\'\s]*[a-zA-Z0-9_-]{16,}["\']?', re.IGNORECASE), 'api_key="[REDACTED]"'),
    (re.compile(r'api[_-]?secret["\'\s]*[:=]["\'\s]*[a-zA-Z0-9_-]{16,}["\']?', re.IGNORECASE), 'api_secret="[REDACTED]"'),
    (re.compile(r'access[_-]?id["\'\s]*[:=]["\'\s]*[a-zA-Z0-9_-]{16,}["\']?', re.IGNORECASE), 'access_id="[REDACTED]"'),
    (re.compile(r'secret[_-]?key["\'\s]*[:=]["\'\s]*[a-zA-Z0-9_-]{16,}["\']?', re.IGNORECASE), 'secret_key="[REDACTED]"'),
    (re.compile(r'secret["\'\s]*[:=]["\'\s]*[a-zA-Z0-9_-]{16,}["\']?', re.IGNORECASE), 'secret="[REDACTED]"'),
    (re.compile(r'signature=[0-9a-f]{16,}', re.IGNORECASE), 'signature=[REDACTED]'),
    (re.compile(r'(X-(?:MEXC-APIKEY|COINEX-KEY|COINEX-SIGN)["\'\s]*[:=]["\'\s]*)[^"\'\s,}]+', re.IGNORECASE), r'\1[REDACTED]'),
    (re.compile(r'password["\s]*[:=]["\s]*"?([^\s"\']+)"?', re.IGNORECASE), 'password="[REDACTED]"'),
    (re.compile(r'token["\s]*[:=]["\s]*"?([a-zA-Z0-9._-]{20,})"?', re.IGNORECASE), 'token="[REDACTED]"'),
]


def sanitize_message(message: str) -> str:
    """
    Sanitize a log message to remove sensitive information.

    Args:
        message: Original log message

    Returns:
        Sanitized log message with credentials and signatures redacted
    """
    sanitized = message
    for pattern, replacement in SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


class RedactingFilter(logging.Filter):
    """Handler filter that redacts credentials from every record it passes."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = sanitize_message(record.getMessage())
        record.args = None
        return True


@dataclass
class ExecutionMetrics:
    """Tracks performance metrics during execution."""
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    api_calls: Dict[str, int] = field(default_factory=dict)
    errors_encountered: List[str] = field(default_factory=list)
    withdrawals_requested: int = 0
    withdrawals_succeeded: int = 0
    withdrawals_failed: int = 0

    @property
    def execution_duration(self) -> float:
        """Calculate execution duration in seconds."""
        end = self.end_time or time.time()
        return end - self.start_time

    @property
    def total_api_calls(self) -> int:
        """Get total number of API calls made."""
        return sum(self.api_calls.values())

    def add_api_call(self, service: str) -> None:
        """Record an API call for the specified service."""
        self.api_calls[service] = self.api_calls.get(service, 0) + 1

    def add_error(self, error_message: str) -> None:
        """Record an error encountered during execution."""
        self.errors_encountered.append(error_message)

    def record_results(self, results: List[WithdrawalResult]) -> None:
        """Record the outcome of a withdrawal batch."""
        self.withdrawals_requested += len(results)
        for result in results:
            if result.success:
                self.withdrawals_succeeded += 1
            else:
                self.withdrawals_failed += 1
                self.add_error(f"{result.coin} -> {result.address}: {result.error}")

    def finalize(self) -> None:
        """Finalize metrics collection."""
        self.end_time = time.time()


def categorize_error(error: Exception) -> ErrorCategory:
    """Map an exception onto its error category."""
    from ..config.configuration_manager import ConfigurationError

    if isinstance(error, AuthError):
        return ErrorCategory.AUTHENTICATION
    if isinstance(error, NetworkError):
        return ErrorCategory.NETWORK
    if isinstance(error, (ApiError, ExchangeError)):
        return ErrorCategory.API_ERROR
    if isinstance(error, ConfigurationError):
        return ErrorCategory.CONFIGURATION
    if isinstance(error, SecurityValidationError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


class ErrorHandler:
    """
    Error handling and logging system.

    Provides structured logging, execution tracking, log sanitization,
    and metrics collection for the withdrawal tool.
    """

    def __init__(self, log_file_path: str = "logs/bulk_withdraw.log"):
        """
        Initialize the error handler with logging configuration.

        Args:
            log_file_path: Path to the main log file
        """
        self.log_file_path = log_file_path
        self.error_log_path = log_file_path.replace('.log', '_errors.log')
        self.metrics_log_path = log_file_path.replace('.log', '_metrics.log')

        self.logger = None
        self.error_logger = None
        self.metrics_logger = None
        self.execution_metrics = ExecutionMetrics()

        self._setup_logging()

    def _setup_logging(self) -> None:
        """Set up structured logging with rotation, formatting and redaction."""
        log_dir = Path(self.log_file_path).parent
        log_dir.mkdir(parents=True, exist_ok=True)

        debug = os.getenv('BULK_WITHDRAW_DEBUG', '').lower() == 'true'

        # Package root logger; module loggers under bulk_withdraw.* propagate here
        self.logger = logging.getLogger('bulk_withdraw')
        self.logger.setLevel(logging.DEBUG if debug else logging.INFO)
        self.logger.handlers.clear()

        self.error_logger = logging.getLogger('bulk_withdraw_errors')
        self.error_logger.setLevel(logging.WARNING)
        self.error_logger.handlers.clear()

        self.metrics_logger = logging.getLogger('bulk_withdraw_metrics')
        self.metrics_logger.setLevel(logging.INFO)
        self.metrics_logger.handlers.clear()

        detailed_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        simple_formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        redacting_filter = RedactingFilter()

        main_handler = logging.handlers.RotatingFileHandler(
            self.log_file_path,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        main_handler.setFormatter(detailed_formatter)
        main_handler.addFilter(redacting_filter)
        self.logger.addHandler(main_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            self.error_log_path,
            maxBytes=5*1024*1024,  # 5MB
            backupCount=3
        )
        error_handler.setFormatter(detailed_formatter)
        error_handler.addFilter(redacting_filter)
        self.error_logger.addHandler(error_handler)

        metrics_handler = logging.handlers.RotatingFileHandler(
            self.metrics_log_path,
            maxBytes=5*1024*1024,  # 5MB
            backupCount=3
        )
        metrics_handler.setFormatter(simple_formatter)
        metrics_handler.addFilter(redacting_filter)
        self.metrics_logger.addHandler(metrics_handler)

        if debug:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(simple_formatter)
            console_handler.setLevel(logging.DEBUG)
            console_handler.addFilter(redacting_filter)
            self.logger.addHandler(console_handler)

    def _sanitize_message(self, message: str) -> str:
        return sanitize_message(message)

    def _log_with_sanitization(self, logger: logging.Logger, level: LogLevel,
                               message: str) -> None:
        logger.log(level.value, self._sanitize_message(message))

    def log_execution_start(self, exchange: str, operation: str) -> None:
        """
        Log the start of an operation against an exchange.

        Args:
            exchange: Exchange name
            operation: Operation being run (balances, coins, withdraw)
        """
        self.execution_metrics = ExecutionMetrics()

        start_message = (
            f"{exchange} {operation} execution started at {datetime.now().isoformat()}"
        )
        self._log_with_sanitization(self.logger, LogLevel.INFO, start_message)

        system_info = {
            'python_version': sys.version.split()[0],
            'working_directory': os.getcwd(),
            'process_id': os.getpid()
        }

        self._log_with_sanitization(self.logger, LogLevel.INFO, f"System info: {system_info}")

    def log_execution_success(self, operation: str, results: Optional[List[WithdrawalResult]] = None) -> None:
        """
        Log successful completion of an operation.

        Args:
            operation: Operation that completed
            results: Withdrawal results, when the operation submitted withdrawals
        """
        self.execution_metrics.finalize()
        if results is not None:
            self.execution_metrics.record_results(results)

        success_message = (
            f"{operation} completed. "
            f"Withdrawals succeeded: {self.execution_metrics.withdrawals_succeeded}, "
            f"failed: {self.execution_metrics.withdrawals_failed}, "
            f"Execution time: {self.execution_metrics.execution_duration:.2f}s"
        )

        self._log_with_sanitization(self.logger, LogLevel.INFO, success_message)
        if self.execution_metrics.withdrawals_failed:
            self._log_with_sanitization(
                self.error_logger,
                LogLevel.WARNING,
                f"{self.execution_metrics.withdrawals_failed} withdrawal(s) failed: "
                f"{self.execution_metrics.errors_encountered}"
            )
        self._log_performance_metrics()

    def log_execution_failure(self, error: Exception, error_category: Optional[ErrorCategory] = None) -> None:
        """
        Log a failed execution.

        Args:
            error: Exception that caused the failure
            error_category: Category of the error; derived from the exception when omitted
        """
        category = error_category or categorize_error(error)
        self.execution_metrics.finalize()
        self.execution_metrics.add_error(str(error))

        failure_message = (
            f"Execution failed after {self.execution_metrics.execution_duration:.2f}s. "
            f"Error category: {category.value}, "
            f"Error: {str(error)}"
        )

        self._log_with_sanitization(self.logger, LogLevel.ERROR, failure_message)
        self._log_with_sanitization(self.error_logger, LogLevel.ERROR, failure_message)

        import traceback
        error_details = {
            'error_type': type(error).__name__,
            'error_message': str(error),
            'error_category': category.value,
            'traceback': traceback.format_exc()
        }

        self._log_with_sanitization(
            self.error_logger,
            LogLevel.ERROR,
            f"Detailed error information: {error_details}"
        )

        self._log_performance_metrics()

    def handle_api_error(self, error: Exception, service: str, operation: str) -> bool:
        """
        Log an API error and report whether retrying could help.

        Nothing is retried automatically; only transport failures are
        reported as retriable.

        Args:
            error: API error that occurred
            service: Service name (e.g., 'MEXC', 'CoinEx')
            operation: Operation being performed

        Returns:
            True if a later manual retry may succeed, False otherwise
        """
        category = categorize_error(error)
        if category == ErrorCategory.UNKNOWN:
            category = ErrorCategory.API_ERROR

        should_retry = isinstance(error, NetworkError)
        log_level = LogLevel.WARNING if should_retry else LogLevel.ERROR

        api_error_message = (
            f"API error in {service} during {operation}: {str(error)}. "
            f"Category: {category.value}, Retry recommended: {should_retry}"
        )

        self._log_with_sanitization(self.logger, log_level, api_error_message)
        self._log_with_sanitization(self.error_logger, log_level, api_error_message)

        self.execution_metrics.add_error(f"{service}:{operation} - {str(error)}")

        return should_retry

    def log_api_call(self, service: str, operation: str, success: bool = True,
                     response_time: Optional[float] = None) -> None:
        """
        Log API call for performance tracking.

        Args:
            service: Service name
            operation: Operation performed
            success: Whether the call was successful
            response_time: Response time in seconds
        """
        self.execution_metrics.add_api_call(service)

        status = "SUCCESS" if success else "FAILED"
        time_info = f" ({response_time:.3f}s)" if response_time else ""

        api_message = f"API call: {service}.{operation} - {status}{time_info}"
        self._log_with_sanitization(self.logger, LogLevel.DEBUG, api_message)

    def log_warning(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN) -> None:
        warning_message = f"[{category.value.upper()}] {message}"
        self._log_with_sanitization(self.logger, LogLevel.WARNING, warning_message)

    def log_info(self, message: str) -> None:
        self._log_with_sanitization(self.logger, LogLevel.INFO, message)

    def log_debug(self, message: str) -> None:
        self._log_with_sanitization(self.logger, LogLevel.DEBUG, message)

    def _log_performance_metrics(self) -> None:
        """Log detailed performance metrics."""
        metrics_data = {
            'timestamp': datetime.now().isoformat(),
            'execution_duration_seconds': round(self.execution_metrics.execution_duration, 3),
            'total_api_calls': self.execution_metrics.total_api_calls,
            'api_calls_by_service': dict(self.execution_metrics.api_calls),
            'withdrawals_requested': self.execution_metrics.withdrawals_requested,
            'withdrawals_succeeded': self.execution_metrics.withdrawals_succeeded,
            'withdrawals_failed': self.execution_metrics.withdrawals_failed,
            'errors_count': len(self.execution_metrics.errors_encountered),
            'success': len(self.execution_metrics.errors_encountered) == 0
        }

        metrics_message = f"Performance metrics: {metrics_data}"
        self._log_with_sanitization(self.metrics_logger, LogLevel.INFO, metrics_message)

    def get_execution_metrics(self) -> ExecutionMetrics:
        return self.execution_metrics
