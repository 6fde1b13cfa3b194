"""Error handling and retry configuration for the contract workflow.

Provides the exception taxonomy used by the engine and its stages, retry
logic for LLM-backed capabilities, and an error conversion decorator.

Recoverable failures (a reviewer or proposer call) are absorbed inside the
stage that made the call. Everything deriving from ``WorkflowFatalError``
aborts the run and reaches the caller.
"""

from functools import wraps
from typing import Any, Callable, List, Optional, Type
import time
from loguru import logger


# Custom Exception Classes

class ContractWorkflowError(Exception):
    """Base exception for all contract workflow errors."""
    pass


class WorkflowFatalError(ContractWorkflowError):
    """Aborts a run. No FinalDecision is produced."""
    pass


class GraphValidationError(WorkflowFatalError):
    """Raised when a workflow graph is structurally malformed."""
    pass


class ConditionalEdgeConflictError(WorkflowFatalError):
    """Raised when several conditional edges of equal priority match one output."""

    def __init__(self, source_id: str, target_ids: List[str]):
        self.source_id = source_id
        self.target_ids = target_ids
        super().__init__(
            f"Conditional edges from '{source_id}' are not mutually exclusive: "
            f"{', '.join(target_ids)} all matched with the same priority"
        )


class StageExecutionError(WorkflowFatalError):
    """Raised when a stage fails with an exception it did not recover from."""

    def __init__(self, stage_id: str, cause: BaseException):
        self.stage_id = stage_id
        self.cause = cause
        super().__init__(f"Stage '{stage_id}' failed: {cause}")


class WorkflowStalledError(WorkflowFatalError):
    """Raised when a run stops without any terminal output."""
    pass


class WorkflowCancelledError(WorkflowFatalError):
    """Raised when a run is cancelled before producing its terminal output."""
    pass


class ReviewError(ContractWorkflowError):
    """Raised when a specialist review fails."""
    pass


class NegotiationError(ContractWorkflowError):
    """Raised when a negotiation proposal cannot be produced."""
    pass


class LLMError(ContractWorkflowError):
    """Raised when LLM API calls fail."""
    pass


class ApprovalError(ContractWorkflowError):
    """Raised when the human approval gateway is misused."""
    pass


class ConfigurationError(ContractWorkflowError):
    """Raised when configuration is missing or invalid."""
    pass


# Retry Configuration

class RetryConfig:
    """Configuration for retry logic with exponential backoff."""

    def __init__(
        self,
        attempts: int = 5,
        exp_base: int = 7,
        initial_delay: float = 1.0,
        max_delay: float = 60.0,
        http_status_codes: Optional[list[int]] = None
    ):
        """Initialize retry configuration.

        Args:
            attempts: Maximum number of retry attempts
            exp_base: Base for exponential backoff calculation
            initial_delay: Initial delay in seconds
            max_delay: Maximum delay between retries in seconds
            http_status_codes: HTTP status codes that trigger retries
        """
        self.attempts = attempts
        self.exp_base = exp_base
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.http_status_codes = http_status_codes or [429, 500, 503, 504]

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt using exponential backoff.

        Args:
            attempt: Current attempt number (0-indexed)

        Returns:
            Delay in seconds
        """
        delay = self.initial_delay * (self.exp_base ** attempt)
        return min(delay, self.max_delay)


# Stage capabilities are called once per review or proposal and already have
# a deterministic fallback, so retries stay short.
GEMINI_RETRY_CONFIG = RetryConfig(
    attempts=3,
    exp_base=4,
    initial_delay=1.0,
    max_delay=20.0,
    http_status_codes=[429, 500, 503, 504]
)


def retry_with_backoff(
    config: RetryConfig = GEMINI_RETRY_CONFIG,
    exceptions: tuple[Type[Exception], ...] = (Exception,)
) -> Callable:
    """Decorator to retry function execution with exponential backoff.

    Args:
        config: Retry configuration
        exceptions: Tuple of exception types to catch and retry

    Returns:
        Decorated function with retry logic
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            last_exception = None

            for attempt in range(config.attempts):
                try:
                    return func(*args, **kwargs)

                except exceptions as e:
                    last_exception = e

                    if attempt < config.attempts - 1:
                        delay = config.calculate_delay(attempt)
                        logger.warning(
                            f"Attempt {attempt + 1}/{config.attempts} failed, retrying in {delay}s",
                            function=func.__name__,
                            error=str(e),
                            error_type=type(e).__name__
                        )
                        time.sleep(delay)
                    else:
                        logger.error(
                            f"All {config.attempts} attempts failed",
                            function=func.__name__,
                            error=str(e),
                            error_type=type(e).__name__
                        )

            raise last_exception

        return wrapper
    return decorator


def handle_errors(
    error_type: Type[ContractWorkflowError],
    default_return: Any = None,
    reraise: bool = True
) -> Callable:
    """Decorator to handle errors and convert them to custom exception types.

    Args:
        error_type: Custom exception type to raise
        default_return: Default value to return on error (if not reraising)
        reraise: Whether to reraise the exception after logging

    Returns:
        Decorated function with error handling
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            try:
                return func(*args, **kwargs)

            except ContractWorkflowError:
                # Already a custom exception, just reraise
                raise

            except Exception as e:
                logger.error(
                    f"Error in {func.__name__}",
                    error=str(e),
                    error_type=type(e).__name__
                )

                if reraise:
                    raise error_type(f"Error in {func.__name__}: {str(e)}") from e
                else:
                    return default_return

        return wrapper
    return decorator
