from dataclasses import dataclass
from time import monotonic

@dataclass
class Stopwatch:
    """Monotonic elapsed-time measurement for capture attempts and ticks."""

    started: float = 0.0
    stopped: float = 0.0
    running: bool = False

    def start(self) -> "Stopwatch":
        self.started = monotonic()
        self.stopped = 0.0
        self.running = True
        return self

    def stop(self) -> float:
        assert self.running
        self.stopped = monotonic()
        self.running = False
        return self.elapsed

    @property
    def elapsed(self) -> float:
        if self.started == 0.0:
            return 0.0
        end = monotonic() if self.running else self.stopped
        return end - self.started

    def remaining(self, budget: float) -> float:
        """Seconds left of ``budget`` measured from :meth:`start`."""
        return max(0.0, budget - self.elapsed)
