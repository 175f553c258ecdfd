"""
Resilience Patterns Module.

Circuit breaker for the analysis LLM. Calls are never retried here; when the
provider keeps failing the breaker opens and callers fail fast instead of
waiting on the provider timeout for every request.
"""

import time
from enum import Enum
from typing import Any, Awaitable, Callable

from backend.app.core.logging import get_logger

logger = get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF-OPEN"


class CircuitBreakerOpenException(Exception):
    """Raised when the circuit is open and calls are blocked."""
    pass


class CircuitBreaker:
    """
    Count consecutive failures of an async dependency.

    CLOSED passes calls through. After ``failure_threshold`` failures the
    breaker goes OPEN and rejects calls until ``recovery_timeout`` seconds
    have passed; the next call is then a HALF-OPEN trial that either closes
    the circuit again or reopens it.
    """

    def __init__(self, name: str, failure_threshold: int = 5, recovery_timeout: int = 30):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.reset()

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        if self.state == CircuitState.OPEN:
            if time.time() - self.last_failure_time > self.recovery_timeout:
                self.state = CircuitState.HALF_OPEN
                logger.info(f"Circuit {self.name} HALF-OPEN, sending trial call")
            else:
                raise CircuitBreakerOpenException(
                    f"Circuit {self.name} is OPEN after {self.failure_count} failures"
                )

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            self._record_failure(e)
            raise

        if self.state == CircuitState.HALF_OPEN or self.failure_count:
            if self.state == CircuitState.HALF_OPEN:
                logger.info(f"Circuit {self.name} CLOSED, provider recovered")
            self.reset()
        return result

    def _record_failure(self, error: Exception) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()
        logger.error(f"Circuit {self.name} failure ({self.failure_count}/{self.failure_threshold}): {error}")

        if self.failure_count >= self.failure_threshold or self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.OPEN
            logger.warning(f"Circuit {self.name} OPEN, blocking calls for {self.recovery_timeout}s")

    def reset(self) -> None:
        self.failure_count = 0
        self.last_failure_time = 0.0
        self.state = CircuitState.CLOSED


llm_circuit_breaker = CircuitBreaker("analysis-llm", failure_threshold=3, recovery_timeout=60)
