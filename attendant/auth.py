"""Token acquisition with exponential backoff.

Every call asks the issuer for a fresh token; nothing is reused between
refresh cycles.

Example:
    broker = TokenBroker(EmmaTokenIssuer(http), BackoffPolicy(base_delay=0.5))
    token = await broker.get_token(Credentials("id", "secret"))
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final, Protocol

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from attendant.exceptions import AuthError

MAX_ATTEMPTS: Final[int] = 3


@dataclass(frozen=True, slots=True)
class Credentials:
    client_id: str
    client_secret: str = field(repr=False)


class TokenIssuer(Protocol):
    """Performs a single token-issuing call."""

    async def issue_token(self, credentials: Credentials) -> str: ...


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """Exponential backoff between token attempts.

    Delay before retry ``n`` (1-based) is
    ``min(base_delay * multiplier ** (n - 1), max_delay)``.
    """

    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0


class TokenBroker:
    def __init__(self, issuer: TokenIssuer, policy: BackoffPolicy | None = None) -> None:
        self._issuer = issuer
        self._policy = policy or BackoffPolicy()
        self._log = logger.bind(component="auth")

    def _before_sleep(self, state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        delay = state.next_action.sleep if state.next_action else 0.0
        self._log.warning(
            "Token attempt {attempt}/{max} failed: {error}. Waiting {delay:.1f}s...",
            attempt=state.attempt_number, max=MAX_ATTEMPTS, error=exc, delay=delay,
        )

    async def get_token(self, credentials: Credentials) -> str:
        """Issue a token, retrying up to ``MAX_ATTEMPTS`` times.

        Raises:
            AuthError: Every attempt failed; chained to the last error.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(MAX_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self._policy.base_delay,
                exp_base=self._policy.multiplier,
                max=self._policy.max_delay,
            ),
            retry=retry_if_exception_type(Exception),
            before_sleep=self._before_sleep,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    token = await self._issuer.issue_token(credentials)
        except RetryError as e:
            last = e.last_attempt.exception()
            raise AuthError(attempts=e.last_attempt.attempt_number, reason=str(last)) from last

        return token
