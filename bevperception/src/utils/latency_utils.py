import time


class Timer:
    """Wall clock timer, toc() returns milliseconds since the last tic()/toc()."""

    def __init__(self):
        self.tic()

    def tic(self):
        self._start = time.perf_counter()

    def toc(self) -> float:
        now = time.perf_counter()
        latency_ms = (now - self._start) * 1000.0
        self._start = now
        return latency_ms
