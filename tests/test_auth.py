from __future__ import annotations

import pytest

from attendant.auth import MAX_ATTEMPTS, BackoffPolicy, Credentials, TokenBroker
from attendant.exceptions import AuthError, TransportError, UpstreamStatusError

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]

NO_WAIT = BackoffPolicy(base_delay=0, max_delay=0)
CREDENTIALS = Credentials("client", "secret")


class ScriptedIssuer:
    """Raises the queued errors in order, then returns the token."""

    def __init__(self, *errors: Exception, token: str = "tok-1") -> None:
        self._errors = list(errors)
        self._token = token
        self.calls: list[Credentials] = []

    async def issue_token(self, credentials: Credentials) -> str:
        self.calls.append(credentials)
        if self._errors:
            raise self._errors.pop(0)
        return self._token


@pytest.mark.asyncio
async def test_first_attempt_success():
    issuer = ScriptedIssuer()
    assert await TokenBroker(issuer, NO_WAIT).get_token(CREDENTIALS) == "tok-1"
    assert len(issuer.calls) == 1


@pytest.mark.asyncio
async def test_two_failures_then_success_uses_three_attempts():
    issuer = ScriptedIssuer(TransportError("reset"), UpstreamStatusError(503, "busy"))
    token = await TokenBroker(issuer, NO_WAIT).get_token(CREDENTIALS)
    assert token == "tok-1"
    assert len(issuer.calls) == 3


@pytest.mark.asyncio
async def test_exhausted_attempts_raise_auth_error_with_last_cause():
    last = UpstreamStatusError(401, "bad credentials")
    issuer = ScriptedIssuer(TransportError("a"), TransportError("b"), last, TransportError("never"))

    with pytest.raises(AuthError) as exc_info:
        await TokenBroker(issuer, NO_WAIT).get_token(CREDENTIALS)

    assert len(issuer.calls) == MAX_ATTEMPTS == 3
    assert exc_info.value.attempts == 3
    assert exc_info.value.__cause__ is last
    assert "bad credentials" in str(exc_info.value)


@pytest.mark.asyncio
async def test_no_token_reuse_between_calls():
    issuer = ScriptedIssuer()
    broker = TokenBroker(issuer, NO_WAIT)
    await broker.get_token(CREDENTIALS)
    await broker.get_token(CREDENTIALS)
    assert len(issuer.calls) == 2


@pytest.mark.asyncio
async def test_retry_warnings_are_logged(log_records: list[str]):
    issuer = ScriptedIssuer(TransportError("reset"))
    await TokenBroker(issuer, NO_WAIT).get_token(CREDENTIALS)
    assert any("Token attempt 1/3 failed" in r for r in log_records)


def test_credentials_repr_hides_secret():
    assert "secret" not in repr(Credentials("id", "secret"))
