"""Probabilistic success/failure responses for the application endpoint."""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

SUCCESS_BODY = "Hello World!\n"
FAILURE_BODY = "Fail\n"

# Default artificial latency so request histograms never sit at zero.
DEFAULT_PROCESSING_DELAY: float = 0.005


@dataclass(frozen=True)
class Outcome:
    """Status code and body chosen for one request."""

    status: int
    body: str

    @property
    def ok(self) -> bool:
        return self.status < 400


SUCCESS = Outcome(200, SUCCESS_BODY)
FAILURE = Outcome(500, FAILURE_BODY)


class ResponseGenerator:
    """Succeeds for roughly ``success_rate`` percent of calls.

    Every call draws a uniform integer in [1, 100]; a draw above the success
    rate is a failure.  A rate of 0 therefore always fails and a rate of 100
    always succeeds.
    """

    def __init__(
        self,
        success_rate: int,
        *,
        processing_delay: float = DEFAULT_PROCESSING_DELAY,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the generator.

        Args:
            success_rate: Percentage of successful responses, 0 to 100.
            processing_delay: Seconds to wait before answering.
            rng: Random source, injectable for deterministic tests.
            sleep: Coroutine used for the processing delay.

        Raises:
            ValueError: If ``success_rate`` is outside [0, 100].
        """
        if isinstance(success_rate, bool) or not isinstance(success_rate, int):
            raise ValueError(f"success rate must be an integer, got {success_rate!r}")
        if not 0 <= success_rate <= 100:
            raise ValueError(f"success rate must be between 0 and 100, got {success_rate}")
        if processing_delay < 0:
            raise ValueError("processing delay must not be negative")
        self.success_rate = success_rate
        self.processing_delay = processing_delay
        self._rng = rng or random.Random()
        self._sleep = sleep

    def pick(self) -> Outcome:
        """Draw an outcome without the processing delay."""
        if self._rng.randint(1, 100) > self.success_rate:
            return FAILURE
        return SUCCESS

    async def respond(self) -> Outcome:
        """Wait the processing delay, then draw an outcome."""
        if self.processing_delay:
            await self._sleep(self.processing_delay)
        return self.pick()
