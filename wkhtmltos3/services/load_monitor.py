# services/load_monitor.py
from typing import Callable, Optional

import psutil
from pydantic import BaseModel

from wkhtmltos3.core.config import settings
from wkhtmltos3.core.logger import logger


class LoadSample(BaseModel):
    """Host load at one instant: memory in use (0-1) and 1-minute load average."""
    memory_fraction: float
    load_average: float


def sample_host_load() -> LoadSample:
    return LoadSample(
        memory_fraction=psutil.virtual_memory().percent / 100.0,
        load_average=psutil.getloadavg()[0],
    )


class LoadMonitor:
    """
    Advisory overload check consulted once per scheduling decision.
    Samples are taken fresh on every call and never cached.
    """

    def __init__(
        self,
        max_memory_fraction: Optional[float] = None,
        max_load_average: Optional[float] = None,
        sampler: Callable[[], LoadSample] = sample_host_load,
    ):
        self.max_memory_fraction = (
            settings.LOAD_MAX_MEMORY_FRACTION if max_memory_fraction is None else max_memory_fraction
        )
        self.max_load_average = (
            settings.LOAD_MAX_LOAD_AVERAGE if max_load_average is None else max_load_average
        )
        self._sampler = sampler

    def exceeds(self, sample: LoadSample) -> bool:
        return (
            sample.memory_fraction > self.max_memory_fraction
            or sample.load_average > self.max_load_average
        )

    def is_overloaded(self) -> bool:
        sample = self._sampler()
        overloaded = self.exceeds(sample)
        if overloaded:
            logger.info(
                "host overloaded",
                extra={
                    "memory_fraction": round(sample.memory_fraction, 3),
                    "load_average": round(sample.load_average, 2),
                    "max_memory_fraction": self.max_memory_fraction,
                    "max_load_average": self.max_load_average,
                }
            )
        return overloaded
