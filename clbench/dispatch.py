"""
Kernel launches over a 1-D grid, with a blocking wait after each launch.

Each launch is enqueued with a completion event, and the host blocks on that
event before doing anything else. The queue is in-order, so a launch never
overlaps the previous one on the device, and the lap recorded after the
wait measures exactly one launch. This leaves the device idle between
launches, which is fine for benchmarking.
"""

from enum import Enum
from logging import getLogger

import pyopencl as cl

from .errors import DispatchError, call_site, error_code, safe_call
from .resources import ResourceKind, ResourceStack

logger = getLogger(__name__)


class LaunchState(Enum):
    IDLE = 0
    ENQUEUED = 1
    COMPLETED = 2
    FAILED = 3


def global_size(total_elements: int, local_group_size: int) -> int:
    """
    Return the smallest multiple of `local_group_size` which covers
    `total_elements`.

    Work-items with an index past `total_elements` are launched; the kernel
    is responsible for skipping them.
    """
    if total_elements < 1:
        raise ValueError("total_elements must be at least 1")
    if local_group_size < 1:
        raise ValueError("local_group_size must be at least 1")
    return (total_elements + local_group_size - 1) // local_group_size * local_group_size


def bind_args(kernel, args):
    """
    Bind `args` to the kernel's argument slots 0, 1, ... in order.

    Every slot must be bound, so the number of arguments has to match the
    kernel's declared argument count.
    """
    num_args = kernel.num_args

    if len(args) != num_args:
        raise TypeError(
            f"{kernel.function_name} takes exactly {num_args} arguments "
            f"({len(args)} given)"
        )

    for slot, arg in enumerate(args):
        safe_call(kernel.set_arg, slot, arg)


class Dispatcher:
    """
    Launches one kernel repeatedly on an in-order queue.

    The `state` attribute follows the most recent launch: `IDLE` before the
    first launch, `ENQUEUED` while the host waits, then `COMPLETED`, or
    `FAILED` if the enqueue or the wait raised. A failure is never retried.
    """

    def __init__(self, queue, kernel, total_elements, local_group_size):
        self.queue = queue
        self.kernel = kernel
        self.total_elements = total_elements
        self.local_size = (local_group_size,)
        self.global_size = (global_size(total_elements, local_group_size),)
        self.state = LaunchState.IDLE
        self.iteration = 0

    def launch(self, timer=None):
        """
        Enqueue the kernel, and block until it has finished.

        If a timer is given, a lap is closed after the wait returns and before
        the completion event is released.
        """
        with ResourceStack() as scope:
            try:
                event = scope.register(
                    cl.enqueue_nd_range_kernel(
                        self.queue,
                        self.kernel,
                        self.global_size,
                        self.local_size,
                    ),
                    ResourceKind.EVENT,
                )
                self.state = LaunchState.ENQUEUED
                event.wait()
            except cl.Error as e:
                self.state = LaunchState.FAILED
                logger.error(f"launch {self.iteration} failed: {e}")
                raise DispatchError(error_code(e), self.iteration, *call_site()) from e

            self.state = LaunchState.COMPLETED

            if timer is not None:
                timer.next_lap()

        self.iteration += 1

    def run(self, args, iterations, timer=None):
        """
        Bind the kernel arguments once, then launch `iterations` times.

        The timer, if given, is restarted just before the first launch, so
        it records one lap per launch.
        """
        if iterations < 1:
            raise ValueError("iterations must be at least 1")

        bind_args(self.kernel, args)
        logger.info(
            f"launch {self.kernel.function_name} {iterations} times, "
            f"global size {self.global_size[0]}, local size {self.local_size[0]}"
        )

        if timer is not None:
            timer.restart()

        for _ in range(iterations):
            self.launch(timer)

    def detach(self):
        self.queue = None
        self.kernel = None
