"""
Metric streams sampled by the dashboard.

A stream is anything that can produce an optional numeric sample on demand
together with optional declared bounds. The application never looks past the
``Stream`` interface; the concrete streams below read system counters through
psutil and never block, so they are safe to poll from the UI loop.
"""

import logging
import math
import time
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import psutil

logger = logging.getLogger(__name__)


class StreamContractError(RuntimeError):
    """A stream produced a value that breaks its own contract."""


class Stream(ABC):
    """A polymorphic metric source."""

    @abstractmethod
    def name(self) -> str:
        """Short label shown in the stream list."""

    def description(self) -> str:
        return ""

    @abstractmethod
    def value(self) -> Optional[float]:
        """Take a sample. ``None`` means no value is available right now."""

    def min(self) -> Optional[float]:
        return None

    def max(self) -> Optional[float]:
        return None

    def format(self, value: float) -> str:
        return f"{value:.1f}"


def check_value(stream: Stream, value: Optional[float]) -> None:
    """Raise StreamContractError if ``value`` is non-finite or out of bounds."""
    if value is None:
        return
    if not math.isfinite(value):
        raise StreamContractError(
            f"Stream '{stream.name()}' produced non-finite value {value!r}"
        )
    lower = stream.min()
    if lower is not None and value < lower:
        raise StreamContractError(
            f"Stream '{stream.name()}' produced {value!r} below its minimum {lower!r}"
        )
    upper = stream.max()
    if upper is not None and value > upper:
        raise StreamContractError(
            f"Stream '{stream.name()}' produced {value!r} above its maximum {upper!r}"
        )


# =============================================================================
# psutil streams
# =============================================================================


# psutil rounds its percentages, which can land a hair outside [0, 100]
PERCENT_ROUNDING_TOLERANCE = 0.5


def _percent(value: float) -> float:
    """Absorb rounding overshoot only. Anything further out is left for check_value."""
    value = float(value)
    if -PERCENT_ROUNDING_TOLERANCE <= value < 0.0:
        return 0.0
    if 100.0 < value <= 100.0 + PERCENT_ROUNDING_TOLERANCE:
        return 100.0
    return value


class PercentStream(Stream):
    """Base for streams reporting a percentage."""

    def min(self) -> Optional[float]:
        return 0.0

    def max(self) -> Optional[float]:
        return 100.0

    def format(self, value: float) -> str:
        return f"{value:.1f}%"


class CpuStream(PercentStream):
    def name(self) -> str:
        return "CPU"

    def description(self) -> str:
        return "Overall CPU utilization"

    def value(self) -> Optional[float]:
        return _percent(psutil.cpu_percent(interval=None))


class CoreStream(PercentStream):
    """Utilization of a single logical core.

    Busy share of the core's ``cpu_times`` since this stream's previous
    sample (or its construction). Each stream owns its baseline;
    ``cpu_percent(percpu=True)`` keeps one baseline shared by all callers.
    """

    def __init__(self, core: int):
        self.core = core
        self._last_times = self._read_times()

    def name(self) -> str:
        return f"Core {self.core + 1}"

    def description(self) -> str:
        return f"Utilization of logical core {self.core + 1}"

    def _read_times(self) -> Optional[Dict[str, float]]:
        per_core = psutil.cpu_times(percpu=True)
        if self.core >= len(per_core):
            return None
        return per_core[self.core]._asdict()

    @staticmethod
    def _split(times: Dict[str, float]) -> Tuple[float, float]:
        """Return (busy, total) seconds, counting guest time once as psutil does."""
        total = sum(times.values())
        total -= times.get("guest", 0.0) + times.get("guest_nice", 0.0)
        idle = times.get("idle", 0.0) + times.get("iowait", 0.0)
        return total - idle, total

    def value(self) -> Optional[float]:
        current = self._read_times()
        last, self._last_times = self._last_times, current
        if current is None or last is None:
            return None

        busy, total = self._split(current)
        last_busy, last_total = self._split(last)
        total_delta = total - last_total
        if total_delta <= 0:
            return None
        return _percent(max(0.0, busy - last_busy) / total_delta * 100.0)


class MemoryStream(PercentStream):
    def name(self) -> str:
        return "Memory"

    def description(self) -> str:
        return "Physical memory in use"

    def value(self) -> Optional[float]:
        return _percent(psutil.virtual_memory().percent)


class SwapStream(PercentStream):
    def name(self) -> str:
        return "Swap"

    def description(self) -> str:
        return "Swap space in use"

    def value(self) -> Optional[float]:
        return _percent(psutil.swap_memory().percent)


class LoadStream(Stream):
    def name(self) -> str:
        return "Load"

    def description(self) -> str:
        return "System load average over the last minute"

    def value(self) -> Optional[float]:
        try:
            return max(0.0, float(psutil.getloadavg()[0]))
        except OSError:
            return None

    def min(self) -> Optional[float]:
        return 0.0

    def format(self, value: float) -> str:
        return f"{value:.2f}"


def format_rate(bps: float) -> str:
    """Format a byte rate with binary units."""
    for unit in ("B/s", "KiB/s", "MiB/s", "GiB/s"):
        if bps < 1024.0:
            return f"{bps:.1f} {unit}"
        bps /= 1024.0
    return f"{bps:.1f} TiB/s"


class NetworkStream(Stream):
    """Receive or transmit rate, from counter deltas between samples."""

    DIRECTIONS = ("recv", "sent")

    def __init__(self, direction: str, interface: Optional[str] = None):
        if direction not in self.DIRECTIONS:
            raise ValueError(f"direction must be one of {self.DIRECTIONS}, got {direction!r}")
        self.direction = direction
        self.interface = interface
        self._last_bytes: Optional[int] = None
        self._last_time = 0.0

    def name(self) -> str:
        label = "Net In" if self.direction == "recv" else "Net Out"
        if self.interface:
            return f"{label} ({self.interface})"
        return label

    def description(self) -> str:
        verb = "received" if self.direction == "recv" else "sent"
        source = self.interface or "all interfaces"
        return f"Bytes {verb} per second on {source}"

    def _read_bytes(self) -> Optional[int]:
        if self.interface:
            counters = psutil.net_io_counters(pernic=True).get(self.interface)
        else:
            counters = psutil.net_io_counters()
        if counters is None:
            return None
        return counters.bytes_recv if self.direction == "recv" else counters.bytes_sent

    def value(self) -> Optional[float]:
        now = time.monotonic()
        current = self._read_bytes()
        last, last_time = self._last_bytes, self._last_time
        self._last_bytes, self._last_time = current, now

        if current is None or last is None:
            return None
        elapsed = now - last_time
        delta = current - last
        if elapsed <= 0 or delta < 0:
            # Counter reset (interface went down and up again)
            return None
        return delta / elapsed

    def min(self) -> Optional[float]:
        return 0.0

    def format(self, value: float) -> str:
        return format_rate(value)


class TemperatureStream(Stream):
    """Hottest current reading across all temperature sensors."""

    def name(self) -> str:
        return "Temperature"

    def description(self) -> str:
        return "Highest sensor temperature"

    def value(self) -> Optional[float]:
        if not hasattr(psutil, "sensors_temperatures"):
            return None
        try:
            sensors = psutil.sensors_temperatures()
        except OSError as e:
            logger.debug(f"Reading temperature sensors failed: {e}")
            return None
        readings = [
            entry.current
            for entries in sensors.values()
            for entry in entries
            if entry.current is not None and math.isfinite(entry.current)
        ]
        if not readings:
            return None
        return float(max(readings))

    def format(self, value: float) -> str:
        return f"{value:.1f} °C"


def default_streams(interface: Optional[str] = None) -> List[Stream]:
    """Build the streams shown at startup, in display order."""
    streams: List[Stream] = [CpuStream()]
    core_count = psutil.cpu_count(logical=True) or 0
    streams.extend(CoreStream(core) for core in range(core_count))
    streams.extend(
        [
            MemoryStream(),
            SwapStream(),
            LoadStream(),
            NetworkStream("recv", interface),
            NetworkStream("sent", interface),
            TemperatureStream(),
        ]
    )
    return streams
