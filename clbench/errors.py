"""
Exceptions raised by the benchmark harness, and the checked-call guard.

Every OpenCL call that can fail is either made through `safe_call`, or has
its `pyopencl.Error` converted at the call site into one of the more specific
exceptions below. Nothing is retried; errors propagate to the command line,
while the resource stack releases whatever was acquired so far.
"""

from inspect import currentframe, getframeinfo

import pyopencl as cl


class BenchmarkError(Exception):
    """
    Base class for failures that end a benchmark run.

    Errors converted from a failed OpenCL call record the file and line of
    the harness code where the conversion happened.
    """

    filename = None
    lineno = None

    @property
    def location(self):
        if self.filename is None:
            return None
        return f"{self.filename}:{self.lineno}"


class StartupError(BenchmarkError):
    """The OpenCL driver, a device, or the kernel source is unavailable"""


class ApiError(BenchmarkError):
    """
    An OpenCL call returned a non-success status.

    The file name and line number are those of the Python code which made
    the call, not of the `pyopencl` internals.
    """

    def __init__(self, code, filename, lineno, routine=None):
        self.code = code
        self.filename = filename
        self.lineno = lineno
        self.routine = routine
        where = f"{filename}:{lineno}"
        if routine:
            super().__init__(f"OpenCL error code {code} in {routine} at {where}")
        else:
            super().__init__(f"OpenCL error code {code} encountered at {where}")


class ContextCreationError(BenchmarkError):
    """The device is invalid or the platform rejected the context or queue"""

    def __init__(self, message, code=None, filename=None, lineno=None):
        super().__init__(message)
        self.code = code
        self.filename = filename
        self.lineno = lineno


class BuildError(BenchmarkError):
    """
    The kernel program failed to compile.

    The `log` attribute holds the compiler diagnostics for the target device.
    """

    def __init__(self, code, log, filename=None, lineno=None):
        super().__init__(f"kernel build failed with code {code}")
        self.code = code
        self.log = log
        self.filename = filename
        self.lineno = lineno


class EntryPointNotFound(BenchmarkError):
    """The built program has no kernel with the requested name"""

    def __init__(self, name, available=()):
        self.name = name
        self.available = tuple(available)
        if self.available:
            super().__init__(
                f"no kernel named {name} (program has {', '.join(self.available)})"
            )
        else:
            super().__init__(f"no kernel named {name}")


class DispatchError(BenchmarkError):
    """An enqueue or wait on a kernel launch failed"""

    def __init__(self, code, iteration=None, filename=None, lineno=None):
        self.code = code
        self.iteration = iteration
        self.filename = filename
        self.lineno = lineno
        super().__init__(f"kernel launch {iteration} failed with code {code}")


class CorrectnessMismatch(BenchmarkError):
    """The device result differs from the host reference"""

    def __init__(self, index, expected, actual):
        self.index = index
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"result mismatch at index {index}: expected {expected}, got {actual}"
        )


def error_code(error):
    """
    Return the OpenCL status code carried by a `pyopencl.Error`, if any.
    """
    return getattr(error, "code", None)


def call_site():
    """
    Return the file name and line number from which this function is called.
    """
    caller = getframeinfo(currentframe().f_back)
    return caller.filename, caller.lineno


def safe_call(func, *args, **kwargs):
    """
    Invoke an OpenCL function, converting a failure into an `ApiError`.

    The error records the caller's file and line, so the report points at
    the harness code that made the failing call.
    """
    try:
        return func(*args, **kwargs)
    except cl.Error as e:
        caller = getframeinfo(currentframe().f_back)
        raise ApiError(
            error_code(e),
            caller.filename,
            caller.lineno,
            getattr(e, "routine", None),
        ) from e
