"""Tests for the moving-window RateLimiter."""

import pytest

from otp_auth.exceptions import RateLimitedError
from otp_auth.services.rate_limiter import RateLimitAction, RateLimiter


@pytest.fixture
def limiter():
    lim = RateLimiter(
        {
            RateLimitAction.REQUEST_OTP: "3/minute",
            RateLimitAction.VERIFY_OTP: "5/minute",
        }
    )
    yield lim
    lim.reset()


def test_n_plus_one_request_is_denied(limiter):
    for _ in range(3):
        assert limiter.allow("email:a@example.com", RateLimitAction.REQUEST_OTP).allowed

    decision = limiter.allow("email:a@example.com", RateLimitAction.REQUEST_OTP)
    assert not decision.allowed
    assert 0 < decision.retry_after <= 60


def test_keys_are_isolated(limiter):
    for _ in range(3):
        limiter.allow("email:a@example.com", RateLimitAction.REQUEST_OTP)

    assert limiter.allow("email:b@example.com", RateLimitAction.REQUEST_OTP).allowed


def test_actions_are_isolated(limiter):
    for _ in range(3):
        limiter.allow("ip:10.0.0.1", RateLimitAction.REQUEST_OTP)

    assert limiter.allow("ip:10.0.0.1", RateLimitAction.VERIFY_OTP).allowed


def test_check_raises_with_retry_after(limiter):
    for _ in range(5):
        limiter.check("email:a@example.com", RateLimitAction.VERIFY_OTP)

    with pytest.raises(RateLimitedError) as excinfo:
        limiter.check("email:a@example.com", RateLimitAction.VERIFY_OTP)
    assert excinfo.value.retry_after > 0


def test_unconfigured_action_is_allowed():
    lim = RateLimiter({RateLimitAction.REQUEST_OTP: "1/minute"})
    for _ in range(10):
        assert lim.allow("k", RateLimitAction.VERIFY_OTP).allowed


def test_reset_clears_counters(limiter):
    for _ in range(3):
        limiter.allow("k", RateLimitAction.REQUEST_OTP)
    limiter.reset()

    assert limiter.allow("k", RateLimitAction.REQUEST_OTP).allowed


def test_allow_all_charges_nothing_when_one_key_is_full(limiter):
    for _ in range(3):
        limiter.allow("ip:10.0.0.9", RateLimitAction.REQUEST_OTP)

    decision = limiter.allow_all(
        ["email:victim@example.com", "ip:10.0.0.9"], RateLimitAction.REQUEST_OTP
    )
    assert not decision.allowed

    for _ in range(3):
        assert limiter.allow("email:victim@example.com", RateLimitAction.REQUEST_OTP).allowed


def test_check_all_raises(limiter):
    limiter.check_all(["a", "b"], RateLimitAction.REQUEST_OTP)
    for _ in range(2):
        limiter.allow("b", RateLimitAction.REQUEST_OTP)

    with pytest.raises(RateLimitedError):
        limiter.check_all(["a", "b"], RateLimitAction.REQUEST_OTP)
