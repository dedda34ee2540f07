"""
Tests for the two-stage upstream fetch strategy.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from rodin_gateway.app.pricing.models import ClientKind
from rodin_gateway.app.pricing.strategy import (
    PHASE_FALLBACK,
    PHASE_FETCH,
    FetchFailure,
    FetchPolicy,
    FetchStrategy,
    FetchSuccess,
)
from shared.errors import NotFoundError, UpstreamError, ValidationError


def fast_policy(**overrides) -> FetchPolicy:
    return FetchPolicy(retry_base_delay=0, **overrides)


class TestFetchStrategy:
    """Test cases for FetchStrategy."""

    @pytest.mark.asyncio
    async def test_primary_success(self):
        source = AsyncMock()
        source.fetch_raw_price_list.return_value = [{"articulo": "1"}]
        strategy = FetchStrategy(source, fast_policy())

        result = await strategy.execute(ClientKind.CODE, "K1024", 30000)

        assert isinstance(result, FetchSuccess)
        assert result.phase == PHASE_FETCH
        assert result.data == [{"articulo": "1"}]
        source.fetch_raw_price_list.assert_awaited_once()
        options = source.fetch_raw_price_list.await_args.args[2]
        assert options.timeout == 30.0
        assert options.page == 1
        assert options.limit is None

    @pytest.mark.asyncio
    async def test_code_clients_get_three_attempts(self):
        source = AsyncMock()
        source.fetch_raw_price_list.side_effect = UpstreamError("boom")
        strategy = FetchStrategy(source, fast_policy(fallback_enabled=False))

        result = await strategy.execute(ClientKind.CODE, "K1", 1000)

        assert isinstance(result, FetchFailure)
        assert result.phase == PHASE_FETCH
        assert source.fetch_raw_price_list.await_count == 3

    @pytest.mark.asyncio
    async def test_email_clients_get_two_attempts(self):
        source = AsyncMock()
        source.fetch_raw_price_list.side_effect = UpstreamError("boom")
        strategy = FetchStrategy(source, fast_policy(fallback_enabled=False))

        await strategy.execute(ClientKind.EMAIL, "a@b.com", 1000)

        assert source.fetch_raw_price_list.await_count == 2

    @pytest.mark.asyncio
    async def test_retry_then_success(self):
        source = AsyncMock()
        source.fetch_raw_price_list.side_effect = [UpstreamError("flaky"), [{"articulo": "1"}]]
        strategy = FetchStrategy(source, fast_policy())

        result = await strategy.execute(ClientKind.CODE, "K1", 1000)

        assert isinstance(result, FetchSuccess)
        assert result.phase == PHASE_FETCH
        assert source.fetch_raw_price_list.await_count == 2

    @pytest.mark.asyncio
    async def test_fallback_after_primary_exhausted(self):
        source = AsyncMock()
        source.fetch_raw_price_list.side_effect = [
            UpstreamError("1"),
            UpstreamError("2"),
            UpstreamError("3"),
            [{"articulo": "1"}],
        ]
        strategy = FetchStrategy(source, fast_policy())

        result = await strategy.execute(ClientKind.CODE, "K1", 30000)

        assert isinstance(result, FetchSuccess)
        assert result.phase == PHASE_FALLBACK
        options = source.fetch_raw_price_list.await_args.args[2]
        assert options.page == 1
        assert options.limit == 100
        assert options.timeout == 10.0

    @pytest.mark.asyncio
    async def test_fallback_failure_reports_both_phases(self):
        source = AsyncMock()
        source.fetch_raw_price_list.side_effect = UpstreamError("still down")
        strategy = FetchStrategy(source, fast_policy())

        result = await strategy.execute(ClientKind.EMAIL, "a@b.com", 1000)

        assert isinstance(result, FetchFailure)
        assert result.phase == PHASE_FALLBACK
        assert result.reason == "still down"
        assert set(result.errors) == {PHASE_FETCH, PHASE_FALLBACK}
        # two primary attempts plus one fallback attempt
        assert source.fetch_raw_price_list.await_count == 3

    @pytest.mark.asyncio
    async def test_not_found_propagates_without_retry(self):
        source = AsyncMock()
        source.fetch_raw_price_list.side_effect = NotFoundError("unknown client")
        strategy = FetchStrategy(source, fast_policy())

        with pytest.raises(NotFoundError):
            await strategy.execute(ClientKind.CODE, "K404", 1000)

        assert source.fetch_raw_price_list.await_count == 1

    @pytest.mark.asyncio
    async def test_validation_error_propagates(self):
        source = AsyncMock()
        source.fetch_raw_price_list.side_effect = ValidationError("bad request")
        strategy = FetchStrategy(source, fast_policy())

        with pytest.raises(ValidationError):
            await strategy.execute(ClientKind.CODE, "K1", 1000)

    @pytest.mark.asyncio
    async def test_attempt_timeout_counts_as_failure(self):
        class SlowSource:
            def __init__(self):
                self.calls = 0

            async def fetch_raw_price_list(self, client_kind, key, options):
                self.calls += 1
                await asyncio.sleep(1)
                return []

        source = SlowSource()
        strategy = FetchStrategy(source, fast_policy(fallback_timeout_ms=20))

        result = await strategy.execute(ClientKind.EMAIL, "a@b.com", 20)

        assert isinstance(result, FetchFailure)
        assert result.phase == PHASE_FALLBACK
        assert result.reason == "TimeoutError"
        assert source.calls == 3

    @pytest.mark.asyncio
    async def test_timeout_is_capped(self):
        source = AsyncMock()
        source.fetch_raw_price_list.return_value = []
        strategy = FetchStrategy(source, fast_policy(max_timeout_ms=5000))

        await strategy.execute(ClientKind.CODE, "K1", 120000)

        assert source.fetch_raw_price_list.await_args.args[2].timeout == 5.0
