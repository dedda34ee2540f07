"""
Two-stage upstream fetch strategy: primary attempt with retries, then one
reduced-scope fallback attempt.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Union

from shared.errors import NotFoundError, ValidationError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, call_with_retry

from .models import ClientKind

PHASE_FETCH = "fetch"
PHASE_FALLBACK = "fallback"


@dataclass
class FetchOptions:
    """Options passed to the upstream price-list source."""
    timeout: float
    page: int = 1
    limit: Optional[int] = None


class PriceListSource(Protocol):
    """Upstream collaborator that returns a raw price-list payload or raises."""

    async def fetch_raw_price_list(self, client_kind: ClientKind, key: str, options: FetchOptions) -> Any:
        ...


@dataclass
class FetchSuccess:
    data: Any
    phase: str
    duration_ms: int


@dataclass
class FetchFailure:
    reason: str
    phase: str
    duration_ms: int
    errors: Dict[str, str] = field(default_factory=dict)


FetchResult = Union[FetchSuccess, FetchFailure]


@dataclass
class FetchPolicy:
    """Retry budgets and timeouts; defaults follow the Rodin integration."""
    email_attempts: int = 2
    code_attempts: int = 3
    max_timeout_ms: int = 30000
    fallback_timeout_ms: int = 10000
    fallback_limit: int = 100
    fallback_enabled: bool = True
    retry_base_delay: float = 0.5
    retry_max_delay: float = 5.0

    def attempts_for(self, client_kind: ClientKind) -> int:
        return self.email_attempts if client_kind is ClientKind.EMAIL else self.code_attempts


class FetchStrategy:
    """Runs the primary stage and, when it is exhausted, the fallback stage.

    Upstream "client unknown" and validation errors are not retryable and
    propagate unchanged; every other failure ends up in a FetchFailure.
    """

    non_retryable = (NotFoundError, ValidationError)

    def __init__(self, source: PriceListSource, policy: Optional[FetchPolicy] = None):
        self.source = source
        self.policy = policy or FetchPolicy()
        self.logger = get_logger("gateway.fetch_strategy")

    async def execute(self, client_kind: ClientKind, key: str, timeout_ms: int) -> FetchResult:
        started = time.perf_counter()
        timeout_s = min(timeout_ms, self.policy.max_timeout_ms) / 1000.0
        errors: Dict[str, str] = {}

        try:
            data = await self._attempt(
                client_kind,
                key,
                FetchOptions(timeout=timeout_s),
                attempts=self.policy.attempts_for(client_kind),
                phase=PHASE_FETCH,
            )
            return FetchSuccess(data=data, phase=PHASE_FETCH, duration_ms=_elapsed_ms(started))
        except RetryError as exc:
            errors[PHASE_FETCH] = _reason(exc)
            self.logger.warning(
                "Primary price-list fetch failed",
                client_kind=client_kind.value,
                key=key,
                attempts=exc.attempts,
                error=errors[PHASE_FETCH],
            )

        if not self.policy.fallback_enabled:
            return FetchFailure(
                reason=errors[PHASE_FETCH],
                phase=PHASE_FETCH,
                duration_ms=_elapsed_ms(started),
                errors=errors,
            )

        fallback_options = FetchOptions(
            timeout=self.policy.fallback_timeout_ms / 1000.0,
            page=1,
            limit=self.policy.fallback_limit,
        )
        try:
            data = await self._attempt(client_kind, key, fallback_options, attempts=1, phase=PHASE_FALLBACK)
        except RetryError as exc:
            errors[PHASE_FALLBACK] = _reason(exc)
            self.logger.error(
                "Fallback price-list fetch failed",
                client_kind=client_kind.value,
                key=key,
                error=errors[PHASE_FALLBACK],
            )
            return FetchFailure(
                reason=errors[PHASE_FALLBACK],
                phase=PHASE_FALLBACK,
                duration_ms=_elapsed_ms(started),
                errors=errors,
            )

        self.logger.warning(
            "Fallback succeeded with first page only",
            client_kind=client_kind.value,
            key=key,
            limit=fallback_options.limit,
        )
        return FetchSuccess(data=data, phase=PHASE_FALLBACK, duration_ms=_elapsed_ms(started))

    async def _attempt(
        self,
        client_kind: ClientKind,
        key: str,
        options: FetchOptions,
        *,
        attempts: int,
        phase: str,
    ) -> Any:
        config = RetryConfig(
            max_attempts=attempts,
            base_delay=self.policy.retry_base_delay,
            max_delay=self.policy.retry_max_delay,
        )
        return await call_with_retry(
            lambda: self.source.fetch_raw_price_list(client_kind, key, options),
            config=config,
            give_up_on=self.non_retryable,
            timeout=options.timeout,
            name=f"price_list_{phase}",
        )


def _reason(exc: RetryError) -> str:
    last = exc.last_exception
    return str(last) or type(last).__name__


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
