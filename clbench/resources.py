"""
Scoped ownership of OpenCL objects.

A `ResourceStack` records device-side handles as they are acquired, and
releases all of them when its scope ends, whether the scope is left normally
or by an exception. Handles are released in reverse order of registration,
so dependent objects (a queue, a kernel) go before the objects they depend
on (a context, a program).

Each kind of handle has exactly one release function, listed in
`RELEASE_FUNCTIONS`. `pyopencl` exposes an explicit release for memory
objects, and queues are drained and finalized through their context manager
exit. The other kinds are reference counted by `pyopencl`: they are freed
when the stack drops the last reference to them. Objects which hold on to a
handle (a `ComputeContext`, a `Library`) register a callback with `defer`,
which drops their references just before the stack releases the handle.
"""

from enum import Enum
from logging import getLogger

logger = getLogger(__name__)


class ResourceKind(Enum):
    QUEUE = "queue"
    BUFFER = "buffer"
    CONTEXT = "context"
    SAMPLER = "sampler"
    PROGRAM = "program"
    KERNEL = "kernel"
    EVENT = "event"


def release_queue(queue):
    queue.__exit__(None, None, None)


def release_memory_object(buffer):
    buffer.release()


def release_reference(handle):
    pass


RELEASE_FUNCTIONS = {
    ResourceKind.QUEUE: release_queue,
    ResourceKind.BUFFER: release_memory_object,
    ResourceKind.CONTEXT: release_reference,
    ResourceKind.SAMPLER: release_reference,
    ResourceKind.PROGRAM: release_reference,
    ResourceKind.KERNEL: release_reference,
    ResourceKind.EVENT: release_reference,
}


class ResourceStack:
    """
    Releases registered handles exactly once, most recent first.

    Use it as a context manager:

    .. code-block:: python

        with ResourceStack() as resources:
            context = resources.register(cl.Context([device]), ResourceKind.CONTEXT)
            queue = resources.register(cl.CommandQueue(context), ResourceKind.QUEUE)

    A release that fails is logged, and the remaining handles are still
    released. An exception leaving the `with` block is never suppressed.

    Registering the same handle twice is not allowed; it is not checked
    either, and results in the handle being released twice.
    """

    def __init__(self, release_functions=None):
        if release_functions is None:
            release_functions = RELEASE_FUNCTIONS
        self._release_functions = release_functions
        self._handles = list()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False

    def __len__(self):
        return sum(1 for _, kind in self._handles if kind is not None)

    def register(self, handle, kind: ResourceKind):
        """
        Take ownership of a handle, and return it.
        """
        if kind not in self._release_functions:
            raise ValueError(f"no release function for resource kind {kind}")
        self._handles.append((handle, kind))
        logger.debug(f"register {kind.value} ({len(self)} held)")
        return handle

    def defer(self, callback):
        """
        Call `callback` with no arguments when the stack closes.

        Callbacks run in the same reverse order as releases, so a callback
        registered right after a handle runs right before that handle is
        released.
        """
        self._handles.append((callback, None))

    def close(self):
        """
        Release every registered handle, in reverse order of registration.

        Returns the number of releases which failed.
        """
        failures = 0

        while self._handles:
            handle, kind = self._handles.pop()
            name = "callback" if kind is None else kind.value
            try:
                if kind is None:
                    handle()
                else:
                    self._release_functions[kind](handle)
                logger.debug(f"release {name}")
            except Exception as e:
                failures += 1
                logger.error(f"failed to release {name}: {e}")
            del handle

        return failures
