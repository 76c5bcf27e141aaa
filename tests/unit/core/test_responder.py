"""Unit tests for the probabilistic response generator."""

import random

import pytest

from flakyapp.core.responder import (
    FAILURE,
    FAILURE_BODY,
    SUCCESS,
    SUCCESS_BODY,
    ResponseGenerator,
)


def _successes(rate: int, n: int, seed: int = 1234) -> int:
    gen = ResponseGenerator(rate, processing_delay=0, rng=random.Random(seed))
    return sum(1 for _ in range(n) if gen.pick().ok)


class TestOutcomes:
    """Tests for the two canned outcomes."""

    def test_success(self):
        """The success outcome is 200 "Hello World!"."""
        assert SUCCESS.status == 200
        assert SUCCESS.body == SUCCESS_BODY == "Hello World!\n"
        assert SUCCESS.ok

    def test_failure(self):
        """The failure outcome is 500 "Fail"."""
        assert FAILURE.status == 500
        assert FAILURE.body == FAILURE_BODY == "Fail\n"
        assert not FAILURE.ok


class TestResponseGenerator:
    """Tests for ResponseGenerator."""

    def test_always_succeeds_at_100(self):
        """Rate 100 never fails."""
        assert _successes(100, 2000) == 2000

    def test_always_fails_at_0(self):
        """Rate 0 never succeeds."""
        assert _successes(0, 2000) == 0

    def test_half_converges(self):
        """Rate 50 lands within 2% of half over 10000 draws."""
        assert 4800 <= _successes(50, 10_000) <= 5200

    @pytest.mark.parametrize("rate", [10, 25, 75, 90])
    def test_rate_converges(self, rate):
        """Other rates converge to their expected share."""
        n = 10_000
        expected = n * rate / 100
        assert abs(_successes(rate, n, seed=rate) - expected) <= 250

    @pytest.mark.parametrize("rate", [-1, 101])
    def test_out_of_range_rejected(self, rate):
        """Rates outside 0..100 raise ValueError."""
        with pytest.raises(ValueError):
            ResponseGenerator(rate)

    @pytest.mark.parametrize("rate", ["50", 50.0, True, None])
    def test_non_integer_rejected(self, rate):
        """Non-integer rates raise ValueError."""
        with pytest.raises(ValueError):
            ResponseGenerator(rate)

    def test_negative_delay_rejected(self):
        """A negative processing delay raises ValueError."""
        with pytest.raises(ValueError):
            ResponseGenerator(50, processing_delay=-0.1)

    @pytest.mark.asyncio
    async def test_respond_waits_processing_delay(self):
        """respond() sleeps for the processing delay before answering."""
        delays = []

        async def fake_sleep(delay):
            delays.append(delay)

        gen = ResponseGenerator(100, processing_delay=0.005, sleep=fake_sleep)
        outcome = await gen.respond()

        assert outcome == SUCCESS
        assert delays == [0.005]

    @pytest.mark.asyncio
    async def test_respond_skips_sleep_without_delay(self):
        """A zero delay skips the sleep."""
        delays = []

        async def fake_sleep(delay):
            delays.append(delay)

        gen = ResponseGenerator(0, processing_delay=0, sleep=fake_sleep)
        assert await gen.respond() == FAILURE
        assert delays == []
