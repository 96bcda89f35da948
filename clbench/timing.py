"""
Lap timing and outlier-robust statistics of the recorded laps.

The mean and standard deviation of a set of laps are computed over the
middle of the sorted sample: ranks `[n * 20 // 100, n * 80 // 100)`. With 20
laps, the 4 fastest and the 4 slowest are discarded, which removes warm-up
effects and scheduling jitter. Sets of fewer than 5 laps are used whole.
"""

import contextlib
import time

import numpy as np

LOWER_PERCENTILE = 20
UPPER_PERCENTILE = 80
MIN_TRIMMED_SAMPLES = 5
GIB = 1 << 30


def trimmed(samples):
    """
    Return the sorted samples with the fastest and slowest fifths removed.

    If there are fewer than `MIN_TRIMMED_SAMPLES` samples, or trimming would
    leave nothing, all samples are returned (sorted).
    """
    data = np.sort(np.asarray(samples, dtype=float))
    n = len(data)

    if n == 0:
        raise ValueError("no samples recorded")

    if n < MIN_TRIMMED_SAMPLES:
        return data

    lo = n * LOWER_PERCENTILE // 100
    hi = n * UPPER_PERCENTILE // 100

    if hi <= lo:
        return data

    return data[lo:hi]


def mean_filtered(samples):
    return float(np.mean(trimmed(samples)))


def std_filtered(samples):
    """
    Population standard deviation of the trimmed samples.
    """
    return float(np.std(trimmed(samples)))


def throughput(total_elements, seconds):
    """
    Elements processed per second.
    """
    return total_elements / seconds


def bandwidth(nbytes, seconds):
    """
    Bytes moved per second, in GiB/s.
    """
    return nbytes / seconds / GIB


class Timer:
    """
    A stopwatch which records laps.

    The timer starts when it is created. Each call to `next_lap` closes the
    current interval, records its duration, and opens the next one.
    """

    def __init__(self, clock=time.perf_counter):
        self._clock = clock
        self.laps = list()
        self._last = clock()

    def __len__(self):
        return len(self.laps)

    def restart(self):
        """
        Reopen the current interval, discarding time elapsed since the last lap.
        """
        self._last = self._clock()

    def elapsed(self):
        return self._clock() - self._last

    def next_lap(self):
        now = self._clock()
        lap = now - self._last
        self.laps.append(lap)
        self._last = now
        return lap

    def record_lap(self, duration):
        self.laps.append(float(duration))

    def lap_avg(self):
        return mean_filtered(self.laps)

    def lap_std(self):
        return std_filtered(self.laps)


@contextlib.contextmanager
def measure_time():
    """
    A context manager to measure the execution time of a piece of code.

    Example:

    .. code-block:: python

        with measure_time() as duration:
            expensive_function()
        print(f"execution took {duration()} seconds")
    """
    start = time.perf_counter()
    yield lambda: time.perf_counter() - start
