import time

WARN_AFTER = 120      # seconds
CRITICAL_AFTER = 300


class EvacTimer:
    """Elapsed evacuation time, started/stopped/reset by explicit calls."""

    def __init__(self, clock=time.monotonic):
        self.clock = clock
        self.running = False
        self._banked = 0.0
        self._started_at = None

    def start(self):
        if self.running:
            return
        self.running = True
        self._started_at = self.clock()

    def stop(self):
        if not self.running:
            return
        self._banked += self.clock() - self._started_at
        self._started_at = None
        self.running = False

    def toggle(self):
        if self.running:
            self.stop()
        else:
            self.start()

    def reset(self):
        self.stop()
        self._banked = 0.0

    @property
    def elapsed(self):
        total = self._banked
        if self.running:
            total += self.clock() - self._started_at
        return int(total)

    def display(self):
        m, s = divmod(self.elapsed, 60)
        return f"{m:02d}:{s:02d}"

    def level(self):
        secs = self.elapsed
        if secs >= CRITICAL_AFTER:
            return "critical"
        if secs >= WARN_AFTER:
            return "warn"
        return "normal"

    def to_dict(self):
        return {
            "running": self.running,
            "elapsed": self.elapsed,
            "display": self.display(),
            "level": self.level(),
        }
