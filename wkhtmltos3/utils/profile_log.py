import time
from typing import List, Optional


class ProfileTimer:
    """
    Collects named elapsed-time entries for one unit of work.

    usage:
        timer = ProfileTimer(enabled=job.profile)
        start = timer.now()
        ...do something being measured...
        timer.add_entry(start, "complete wkhtmltoimage")
        logger.info(timer.report())

    report:
        Execution Profiling Log:
            1185: complete wkhtmltoimage
             289: complete s3 upload
    """

    def __init__(self, title: str = "Execution Profiling Log", enabled: bool = True):
        self.title = title
        self.enabled = enabled
        self.entries: List[str] = []

    @staticmethod
    def now() -> float:
        return time.monotonic()

    def clear(self) -> None:
        self.entries = []

    def add_entry(self, since: float, message: str, until: Optional[float] = None) -> None:
        """Record milliseconds elapsed since `since` if enabled."""
        if not self.enabled:
            return
        elapsed_ms = round(((until if until is not None else self.now()) - since) * 1000)
        self.entries.append(f"{elapsed_ms:>6}: {message}")

    def report(self) -> str:
        return f"{self.title}:\n  " + "\n  ".join(self.entries) + "\n"
