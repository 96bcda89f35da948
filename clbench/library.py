"""
Defines a `Library` utility class to encapsulate run-time compiled kernels.

OpenCL programs are built from source for a single target device. The
compiler's build log is always read back after the build, whether it
succeeded or not: on success a non-empty log usually holds warnings, and on
failure it is the only useful diagnostic. No caching of build products is
done.
"""

from logging import getLogger
from os.path import join, dirname
from warnings import catch_warnings, simplefilter

import pyopencl as cl

from .errors import (
    ApiError,
    BuildError,
    EntryPointNotFound,
    StartupError,
    call_site,
    error_code,
    safe_call,
)
from .resources import ResourceKind, ResourceStack
from .timing import measure_time

logger = getLogger(__name__)

KERNEL_DIR = join(dirname(__file__), "kernels")


def packaged_kernel_file(name):
    """
    Return the path to a kernel source file shipped with this package.
    """
    return join(KERNEL_DIR, f"{name}.cl")


def load_source(filename):
    """
    Read kernel source text, raising `StartupError` if it is missing or empty.
    """
    try:
        with open(filename, "r") as srcfile:
            code = srcfile.read()
    except OSError as e:
        raise StartupError(f"can't read kernel source {filename}: {e}") from e

    if not code.strip():
        raise StartupError(f"kernel source {filename} is empty")

    logger.debug(f"read {len(code)} characters of kernel source from {filename}")
    return code


def build_log(program, device):
    """
    Query the compiler diagnostics for `device` from a program.

    `pyopencl` warns about querying a program before it is built (it defeats
    its compiler cache, which is not used here), so that warning is ignored.
    """
    with catch_warnings():
        simplefilter("ignore")
        log = safe_call(program.get_build_info, device, cl.program_build_info.LOG)
    return (log or "").strip()


def build(context, device, source, options=None):
    """
    Compile kernel source text into a program for `device`.

    The build log is captured before the outcome of the build is examined.
    Raises `BuildError` carrying the log if the compilation failed.
    """
    program = cl.Program(context, source)
    failure = None

    try:
        program.build(options=options or [], devices=[device], cache_dir=False)
    except cl.Error as e:
        failure = e

    try:
        log = build_log(program, device)
    except ApiError:
        if failure is None:
            raise
        log = str()

    if failure is not None:
        # Some drivers only report the diagnostics through the error text.
        log = log or str(failure).strip()
        logger.error(f"kernel build failed:\n{log}")
        raise BuildError(error_code(failure), log, *call_site()) from failure

    if log:
        logger.warning(f"kernel build log:\n{log}")

    return program


def kernel_names(program):
    try:
        names = program.get_info(cl.program_info.KERNEL_NAMES)
    except cl.Error as e:
        logger.debug(f"can't list kernel names: {e}")
        return list()
    return [name for name in names.split(";") if name]


def extract_kernel(program, entry_name):
    """
    Return the kernel named `entry_name` from a built program.

    Raises `EntryPointNotFound` if the program has no kernel of that name,
    and `ApiError` for any other failure to create the kernel.
    """
    try:
        return safe_call(cl.Kernel, program, entry_name)
    except ApiError as e:
        if e.code != cl.status_code.INVALID_KERNEL_NAME:
            raise
        raise EntryPointNotFound(entry_name, kernel_names(program)) from e


class Library:
    """
    Builds and maintains (in memory) a program compiled for one device.

    Kernels are looked up by attribute name, e.g. `library.aplusb`. The
    program and every kernel extracted from it are registered on the given
    `ResourceStack`. Each kernel is extracted once and then reused, so its
    bound arguments persist between lookups. When the stack closes, the
    library lets go of each kernel and of the program just before the stack
    releases them.
    """

    def __init__(self, context, device, code, resources: ResourceStack, options=None):
        logger.info(f"prepare program for {device.name.strip()}")

        with measure_time() as prep_time:
            program = build(context, device, code, options=options)
            self.program = resources.register(program, ResourceKind.PROGRAM)
            self.resources = resources
            self.kernels = dict()
            resources.defer(self.drop_program)
            logger.info(f"program build took {prep_time():0.3}s")

        for name in kernel_names(self.program):
            logger.info(f"+-- {name}")

    @classmethod
    def from_file(cls, context, device, filename, resources, options=None):
        return cls(context, device, load_source(filename), resources, options=options)

    def kernel(self, name):
        if name not in self.kernels:
            kernel = extract_kernel(self.program, name)
            self.kernels[name] = self.resources.register(kernel, ResourceKind.KERNEL)
            self.resources.defer(lambda: self.kernels.pop(name, None))
        return self.kernels[name]

    def drop_program(self):
        self.program = None

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self.kernel(name)
