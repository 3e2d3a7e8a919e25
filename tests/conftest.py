import asyncio

import pytest


class SequenceRandom:
    """Deterministic `random()` source cycling through fixed values."""

    def __init__(self, values):
        self._values = list(values)
        self._i = 0

    def random(self) -> float:
        v = self._values[self._i % len(self._values)]
        self._i += 1
        return v


class ManualTicker:
    """Sleep replacement: every sleep blocks until `fire()` is called."""

    def __init__(self):
        self.pending = []

    async def sleep(self, seconds: float) -> None:
        fut = asyncio.get_running_loop().create_future()
        self.pending.append((seconds, fut))
        await fut

    def live(self):
        return [(s, f) for s, f in self.pending if not f.done()]

    def fire(self):
        for _, fut in self.live():
            fut.set_result(None)


async def _settle(rounds: int = 50) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def make_rng():
    return SequenceRandom


@pytest.fixture
def make_ticker():
    return ManualTicker


@pytest.fixture
def settle():
    return _settle
