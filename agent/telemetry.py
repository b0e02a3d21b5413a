"""
Host telemetry sampler

One sample = memory %, average CPU % over the sample window, used disk %
across mounted partitions and network bytes (sent + received) observed during
the same window. The window (default 200 ms) is the settle delay psutil needs
between two CPU counter reads; it blocks and is not cancellable, so callers
run sample() in a worker thread.
"""
import logging
from typing import Set

import psutil

from agent.models import TelemetrySample, clamp_percent

logger = logging.getLogger(__name__)


class TelemetrySampler:
    def __init__(self, sample_window_seconds: float = 0.2):
        self.sample_window_seconds = sample_window_seconds

    def sample(self) -> TelemetrySample:
        net_before = self._network_bytes()
        cpu = psutil.cpu_percent(interval=self.sample_window_seconds)
        net_after = self._network_bytes()

        return TelemetrySample(
            memory=clamp_percent(psutil.virtual_memory().percent),
            cpu=clamp_percent(cpu),
            disk=self.disk_percent(),
            network=max(0, net_after - net_before),
        )

    @staticmethod
    def _network_bytes() -> int:
        counters = psutil.net_io_counters(pernic=True)
        return sum(c.bytes_sent + c.bytes_recv for c in counters.values())

    @staticmethod
    def disk_percent() -> int:
        """Used space over total space of all physical partitions; 0 when total is 0"""
        total = 0
        used = 0
        seen: Set[str] = set()
        for part in psutil.disk_partitions(all=False):
            if part.device in seen:
                continue
            seen.add(part.device)
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except (PermissionError, OSError) as e:
                logger.debug(f"Skipping partition {part.mountpoint}: {e}")
                continue
            total += usage.total
            used += usage.used

        if total == 0:
            return 0
        return clamp_percent(used / total * 100.0)
