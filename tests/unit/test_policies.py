"""
Tests for the policy layer: retry, timeout, waits and onError routing.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from flow_replay.exceptions import (
    ActionError,
    ActionTimeoutError,
    ErrorCode,
    GlobalTimeoutError,
    TargetNotFoundError,
)
from flow_replay.models.flow import RetryPolicy
from flow_replay.models.step import StepRetry
from flow_replay.policies import (
    RetryConfig,
    apply_post_action_wait,
    bound_by_budget,
    clamp_timeout,
    compute_delay_ms,
    is_retryable,
    maybe_wait_for_navigation,
    network_idle_window_ms,
    resolve_on_error,
    retry_async,
    wait_for_navigation_done,
    with_timeout,
)
from tests.conftest import FakeBrowser


# =============================================================================
# RETRY
# =============================================================================

class TestComputeDelay:
    """Test backoff computation."""

    def test_none(self):
        assert compute_delay_ms(RetryConfig(retries=3, interval_ms=100), 3) == 100

    def test_linear(self):
        assert compute_delay_ms(RetryConfig(retries=3, interval_ms=100, backoff="linear"), 3) == 300

    def test_exponential(self):
        config = RetryConfig(retries=5, interval_ms=100, backoff="exp")
        assert [compute_delay_ms(config, n) for n in (1, 2, 3)] == [100, 200, 400]

    def test_cap(self):
        config = RetryConfig(retries=5, interval_ms=100, backoff="exp", max_interval_ms=250)
        assert compute_delay_ms(config, 4) == 250

    def test_full_jitter_within_bounds(self):
        config = RetryConfig(retries=1, interval_ms=100, jitter="full")
        for _ in range(20):
            assert 0 <= compute_delay_ms(config, 1) <= 100


class TestRetryConfig:
    """Test building retry configs from either schema."""

    def test_from_step_retry(self):
        config = RetryConfig.from_policy(StepRetry(count=2, interval_ms=50, backoff="linear"))
        assert config.retries == 2
        assert config.max_attempts == 3
        assert config.backoff == "linear"

    def test_from_action_policy(self):
        config = RetryConfig.from_policy(RetryPolicy(retries=4, interval_ms=10))
        assert config.retries == 4
        assert config.interval_ms == 10

    def test_none(self):
        assert RetryConfig.from_policy(None).max_attempts == 1


class TestIsRetryable:
    """Test retry eligibility."""

    def test_non_retryable_action_error(self):
        assert not is_retryable(ActionError("bad", retryable=False), RetryConfig(retries=1))

    def test_retry_on_filters_codes(self):
        config = RetryConfig(retries=1, retry_on=["TIMEOUT"])
        assert is_retryable(ActionTimeoutError("slow"), config)
        assert not is_retryable(TargetNotFoundError(), config)

    def test_global_timeout_never_retried(self):
        assert not is_retryable(GlobalTimeoutError(1000), RetryConfig(retries=5))

    def test_plain_exception_counts_as_unknown(self):
        assert is_retryable(RuntimeError("x"), RetryConfig(retries=1, retry_on=["UNKNOWN"]))
        assert not is_retryable(RuntimeError("x"), RetryConfig(retries=1, retry_on=["TIMEOUT"]))


class TestRetryAsync:
    """Test the retry loop."""

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self):
        calls = []

        async def flaky(attempt):
            calls.append(attempt)
            if attempt < 3:
                raise ActionError("detached")
            return "done"

        on_retry = AsyncMock()
        result = await retry_async(flaky, RetryConfig(retries=2), on_retry)
        assert result == "done"
        assert calls == [1, 2, 3]
        assert on_retry.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_raises_last(self):
        async def always(attempt):
            raise ActionError(f"fail {attempt}")

        with pytest.raises(ActionError, match="fail 2"):
            await retry_async(always, RetryConfig(retries=1))

    @pytest.mark.asyncio
    async def test_backoff_beyond_budget_stops(self):
        on_retry = AsyncMock()

        async def always(attempt):
            raise ActionError("fail")

        with pytest.raises(ActionError):
            await retry_async(always, RetryConfig(retries=3, interval_ms=1000), on_retry, lambda: 500)
        on_retry.assert_not_awaited()


# =============================================================================
# TIMEOUT
# =============================================================================

class TestTimeouts:
    """Test clamping and bounded execution."""

    def test_clamp(self):
        assert clamp_timeout(None, 100, 1000) is None
        assert clamp_timeout(0, 100, 1000) is None
        assert clamp_timeout(50, 100, 1000) == 100
        assert clamp_timeout(5000, 100, 1000) == 1000

    def test_bound_by_budget(self):
        assert bound_by_budget(None, None) is None
        assert bound_by_budget(1000, None) == 1000
        assert bound_by_budget(1000, 300) == 300
        assert bound_by_budget(None, -5) == 0

    @pytest.mark.asyncio
    async def test_with_timeout_raises(self):
        with pytest.raises(ActionTimeoutError) as exc_info:
            await with_timeout(asyncio.sleep(1), 20, "Step s1 timed out", "delay")
        assert exc_info.value.code == ErrorCode.TIMEOUT
        assert "20ms" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_with_timeout_passes_value(self):
        async def quick():
            return 7

        assert await with_timeout(quick(), None) == 7
        assert await with_timeout(quick(), 1000) == 7


# =============================================================================
# WAITS
# =============================================================================

class TestWaits:
    """Test navigation and network idle waits."""

    def test_idle_window(self):
        assert network_idle_window_ms(900) == 500
        assert network_idle_window_ms(3000) == 1000
        assert network_idle_window_ms(30000) == 1500

    @pytest.mark.asyncio
    async def test_navigation_done(self):
        browser = FakeBrowser(url="https://example.com/home")
        assert await wait_for_navigation_done(browser, 1, 100, poll_ms=10) == "https://example.com/home"

    @pytest.mark.asyncio
    async def test_navigation_requires_url_change(self):
        browser = FakeBrowser(url="https://example.com/")
        with pytest.raises(ActionTimeoutError):
            await wait_for_navigation_done(browser, 1, 30, before_url="https://example.com/", poll_ms=10)

    @pytest.mark.asyncio
    async def test_navigation_tab_gone(self):
        with pytest.raises(ActionError) as exc_info:
            await wait_for_navigation_done(FakeBrowser(), 99, 30, poll_ms=10)
        assert exc_info.value.code == ErrorCode.TAB_NOT_FOUND

    @pytest.mark.asyncio
    async def test_sniff_sees_nothing(self):
        browser = FakeBrowser(url="https://example.com/")
        assert await maybe_wait_for_navigation(browser, 1, "https://example.com/", 30, 1000, poll_ms=10) is False

    @pytest.mark.asyncio
    async def test_sniff_detects_change(self):
        browser = FakeBrowser(url="https://example.com/next")
        assert await maybe_wait_for_navigation(browser, 1, "https://example.com/", 30, 1000, poll_ms=10) is True

    @pytest.mark.asyncio
    async def test_post_action_wait_without_budget(self):
        with pytest.raises(ActionTimeoutError):
            await apply_post_action_wait(FakeBrowser(), "click", {}, 1, None, 0)

    @pytest.mark.asyncio
    async def test_post_action_network_idle(self):
        browser = FakeBrowser()
        browser.idle_ms = 5000
        await apply_post_action_wait(browser, "click", {"after": {"waitForNetworkIdle": True}}, 1, None, 1000, poll_ms=10)

    @pytest.mark.asyncio
    async def test_other_types_do_not_wait(self):
        browser = FakeBrowser()
        browser.tabs[1].status = "loading"
        await apply_post_action_wait(browser, "fill", {}, 1, "about:blank", 50, poll_ms=10)


# =============================================================================
# ON ERROR
# =============================================================================

class TestOnError:
    """Test onError normalization."""

    def test_default_is_goto_on_error(self):
        decision = resolve_on_error(None)
        assert decision.kind == "goto"
        assert decision.label == "onError"
        assert not decision.halts

    def test_continue_defaults_to_warning(self):
        assert resolve_on_error({"kind": "continue"}).level == "warning"
        assert resolve_on_error({"kind": "continue", "level": "info"}).level == "info"

    def test_goto_label(self):
        assert resolve_on_error({"kind": "goto", "label": "recover"}).label == "recover"

    def test_stop_halts(self):
        assert resolve_on_error({"kind": "stop"}).halts
