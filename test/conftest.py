import itertools
from typing import Iterable, Optional

import pytest

from hegemon_tui.stream import Stream


class FakeStream(Stream):
    """Stream that replays a fixed sequence of samples."""

    def __init__(
        self,
        name: str = "fake",
        samples: Optional[Iterable[Optional[float]]] = None,
        lower: Optional[float] = None,
        upper: Optional[float] = None,
    ):
        self._name = name
        self._samples = iter(samples) if samples is not None else itertools.count()
        self._lower = lower
        self._upper = upper

    def name(self) -> str:
        return self._name

    def value(self) -> Optional[float]:
        return next(self._samples)

    def min(self) -> Optional[float]:
        return self._lower

    def max(self) -> Optional[float]:
        return self._upper


@pytest.fixture
def fake_stream():
    return FakeStream


@pytest.fixture
def make_streams():
    def factory(count: int):
        return [FakeStream(f"stream {i}") for i in range(count)]

    return factory
