"""
Circuit Breaker for the outbound platform calls

The Uber Eats token exchange and order fetch each have their own breaker.
After ``failure_threshold`` consecutive failures every webhook fails fast with
CircuitBreakerOpenError for ``timeout_seconds``; then a few trial calls are let
through (half-open) and ``success_threshold`` successes close it again.
"""
import asyncio
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, ClassVar, ParamSpec, TypeVar

from app.core.exceptions import CircuitBreakerOpenError, ExternalServiceException
from app.core.logging import get_logger

logger = get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def _always(error: Exception) -> bool:
    return True


def is_upstream_failure(error: Exception) -> bool:
    """
    False for a 4xx answer other than 408/429: the platform is up and refused
    this particular request (unknown order, rejected token).
    """
    status_code = None
    if isinstance(error, ExternalServiceException):
        status_code = error.details.get("status_code")
    if status_code is None:
        return True
    return not 400 <= status_code < 500 or status_code in (408, 429)


class CircuitState(Enum):
    CLOSED = "closed"        # calls pass, failures are counted
    OPEN = "open"            # calls are refused
    HALF_OPEN = "half_open"  # a limited number of trial calls pass


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 30.0
    half_open_max_calls: int = 3
    # errors for which this returns False count as an answer, not a failure
    counts_as_failure: Callable[[Exception], bool] = _always


class CircuitBreaker:
    """
    Per-service breaker; ``get_instance`` hands out one per service name.

    Counters are guarded by a threading lock so the breaker stays consistent
    whichever thread or event loop the calls come from.
    """

    _instances: ClassVar[dict[str, "CircuitBreaker"]] = {}
    _instances_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, service_name: str, config: CircuitBreakerConfig | None = None):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._trial_calls = 0
        self._opened_at = 0.0

    @classmethod
    def get_instance(cls, service_name: str, config: CircuitBreakerConfig | None = None) -> "CircuitBreaker":
        """Shared breaker for ``service_name``; ``config`` only applies on first use"""
        with cls._instances_lock:
            if service_name not in cls._instances:
                cls._instances[service_name] = cls(service_name, config)
            return cls._instances[service_name]

    @classmethod
    def reset_all(cls) -> None:
        """Forget every shared breaker (tests)"""
        with cls._instances_lock:
            cls._instances.clear()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state is CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self._state is CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        return self._state is CircuitState.HALF_OPEN

    def _seconds_open(self) -> float:
        return time.monotonic() - self._opened_at

    def _set_state(self, new_state: CircuitState) -> None:
        """Caller holds the lock"""
        old_state, self._state = self._state, new_state
        self._successes = 0
        if new_state is CircuitState.CLOSED:
            self._failures = 0
        elif new_state is CircuitState.HALF_OPEN:
            self._trial_calls = 0
        else:
            self._opened_at = time.monotonic()

        logger.info(
            f"Circuit breaker '{self.service_name}' is now {new_state.value}",
            extra_data={
                "service": self.service_name,
                "old_state": old_state.value,
                "new_state": new_state.value,
            }
        )

    def can_execute(self) -> bool:
        """Whether a call may go out now; counts half-open trial calls"""
        with self._lock:
            if self._state is CircuitState.OPEN:
                if self._seconds_open() < self.config.timeout_seconds:
                    return False
                self._set_state(CircuitState.HALF_OPEN)

            if self._state is CircuitState.HALF_OPEN:
                if self._trial_calls >= self.config.half_open_max_calls:
                    return False
                self._trial_calls += 1

            return True

    def record_success(self) -> None:
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._successes += 1
                if self._successes >= self.config.success_threshold:
                    self._set_state(CircuitState.CLOSED)
            else:
                self._failures = 0

    def record_failure(self, error: Exception | None = None) -> None:
        with self._lock:
            self._failures += 1
            logger.warning(
                f"Circuit breaker '{self.service_name}' recorded failure",
                extra_data={
                    "service": self.service_name,
                    "failure_count": self._failures,
                    "threshold": self.config.failure_threshold,
                    "error": str(error) if error else None,
                }
            )
            if self._state is CircuitState.HALF_OPEN or self._failures >= self.config.failure_threshold:
                self._set_state(CircuitState.OPEN)

    def get_retry_after(self) -> float:
        """Seconds until trial calls are allowed; 0 unless open"""
        if self._state is not CircuitState.OPEN:
            return 0.0
        return max(0.0, self.config.timeout_seconds - self._seconds_open())

    async def execute(self, func: Callable[P, Awaitable[T]], *args: P.args, **kwargs: P.kwargs) -> T:
        """
        Await ``func(*args, **kwargs)`` through the breaker.

        Raises:
            CircuitBreakerOpenError: the breaker refused the call
        """
        if not self.can_execute():
            raise CircuitBreakerOpenError(self.service_name, self.get_retry_after())

        try:
            result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self.config.counts_as_failure(e):
                self.record_failure(e)
            else:
                self.record_success()
            raise

        self.record_success()
        return result


def get_uber_eats_auth_circuit_breaker() -> CircuitBreaker:
    """Breaker for the Uber Eats token endpoint"""
    return CircuitBreaker.get_instance(
        "uber_eats_auth",
        CircuitBreakerConfig(
            failure_threshold=5,
            success_threshold=2,
            timeout_seconds=30.0,
            counts_as_failure=is_upstream_failure,
        ),
    )


def get_uber_eats_orders_circuit_breaker() -> CircuitBreaker:
    """Breaker for the Uber Eats order endpoint"""
    return CircuitBreaker.get_instance(
        "uber_eats_orders",
        CircuitBreakerConfig(
            failure_threshold=5,
            success_threshold=2,
            timeout_seconds=30.0,
            counts_as_failure=is_upstream_failure,
        ),
    )
