"""
Test fixtures, including an in-memory stand-in for the parts of `pyopencl`
called by the harness.

The stand-in keeps an ordered log of every call (`fake_cl.calls`), which the
tests use to check ordering: build before log query, wait before the next
enqueue, and reverse-order release.
"""

import re

import numpy as np
import pyopencl as cl
import pytest

from clbench import context, dispatch, errors, library, system


class FakeClError(Exception):
    def __init__(self, message, code=-1, routine=None):
        super().__init__(message)
        self.code = code
        self.routine = routine


class FakeDevice:
    def __init__(self, name, type, global_mem_size=1 << 30):
        self.name = name
        self.type = type
        self.global_mem_size = global_mem_size
        self.max_compute_units = 4
        self.max_work_group_size = 256
        self.version = "OpenCL 1.2 fake"


class FakePlatform:
    def __init__(self, name, devices):
        self.name = name
        self.vendor = "Fake Vendor"
        self.version = "OpenCL 1.2"
        self.devices = devices

    def get_devices(self):
        if not self.devices:
            raise FakeClError("clGetDeviceIDs failed: DEVICE_NOT_FOUND", code=-1)
        return list(self.devices)

    def get_info(self, param):
        return {
            cl.platform_info.NAME: self.name,
            cl.platform_info.VENDOR: self.vendor,
            cl.platform_info.VERSION: self.version,
        }[param]


class FakeContext:
    def __init__(self, cl_, devices):
        self.cl = cl_
        self.devices = devices


class FakeQueue:
    def __init__(self, cl_, context, device):
        self.cl = cl_
        self.context = context
        self.device = device

    def finish(self):
        self.cl.calls.append(("finish", None))

    def __exit__(self, *exc_info):
        self.finish()
        self.cl.calls.append(("finalize", None))


class FakeBuffer:
    def __init__(self, cl_, label, data):
        self.cl = cl_
        self.label = label
        self.data = data

    def release(self):
        self.cl.calls.append(("release", self.label))


class FakeEvent:
    def __init__(self, cl_, number):
        self.cl = cl_
        self.number = number

    def wait(self):
        self.cl.calls.append(("wait", self.number))
        if self.cl.fail_wait_at == self.number:
            raise FakeClError("clWaitForEvents failed: OUT_OF_RESOURCES", code=-5)


class FakeKernel:
    def __init__(self, cl_, name, num_args):
        self.cl = cl_
        self.function_name = name
        self.num_args = num_args
        self.args = dict()

    def set_arg(self, slot, value):
        self.cl.calls.append(("set_arg", slot))
        self.args[slot] = value


class FakeProgram:
    kernel_pattern = re.compile(r"__kernel\s+void\s+(\w+)\s*\(([^)]*)\)")

    def __init__(self, cl_, context, source):
        self.cl = cl_
        self.context = context
        self.source = source

    def signatures(self):
        return {
            name: len(params.split(","))
            for name, params in self.kernel_pattern.findall(self.source)
        }

    def build(self, options=None, devices=None, cache_dir=None):
        self.cl.calls.append(("build", options))
        if "syntax error" in self.source:
            raise FakeClError(self.cl.build_error_text, code=-11)
        return self

    def get_build_info(self, device, param):
        self.cl.calls.append(("get_build_info", param))
        return self.cl.build_log

    def get_info(self, param):
        return ";".join(self.signatures())


class FakeOpenCL:
    """
    Namespace standing in for the `pyopencl` module.
    """

    Error = FakeClError
    device_type = cl.device_type
    mem_flags = cl.mem_flags
    platform_info = cl.platform_info
    program_build_info = cl.program_build_info
    program_info = cl.program_info
    status_code = cl.status_code
    VERSION_TEXT = "fake"

    def __init__(self):
        self.calls = list()
        self.platforms = list()
        self.fail_wait_at = None
        self.fail_context = False
        self.build_log = ""
        self.build_error_text = "clBuildProgram failed: BUILD_PROGRAM_FAILURE"
        self.kernel_bodies = dict(aplusb=aplusb)
        self.num_launches = 0
        self.kernel_error = None

    def get_platforms(self):
        return list(self.platforms)

    def Context(self, devices):
        if self.fail_context:
            raise FakeClError("clCreateContext failed: INVALID_DEVICE", code=-33)
        return FakeContext(self, devices)

    def CommandQueue(self, context, device=None, properties=None):
        return FakeQueue(self, context, device)

    def Buffer(self, context, flags, size=0, hostbuf=None):
        if hostbuf is not None:
            data = np.frombuffer(hostbuf.tobytes(), dtype=np.uint8).copy()
            label = "upload"
        else:
            data = np.zeros(size, dtype=np.uint8)
            label = "allocate"
        label = f"{label}{sum(1 for c in self.calls if c[0] == 'buffer')}"
        self.calls.append(("buffer", label))
        return FakeBuffer(self, label, data)

    def Program(self, context, source):
        return FakeProgram(self, context, source)

    def Kernel(self, program, name):
        if self.kernel_error is not None:
            raise FakeClError("clCreateKernel failed", code=self.kernel_error)
        signatures = program.signatures()
        if name not in signatures:
            raise FakeClError("clCreateKernel failed: INVALID_KERNEL_NAME", code=-46)
        return FakeKernel(self, name, signatures[name])

    def enqueue_nd_range_kernel(self, queue, kernel, global_size, local_size):
        number = self.num_launches
        self.num_launches += 1
        self.calls.append(("enqueue", number))
        body = self.kernel_bodies.get(kernel.function_name)
        if body is not None:
            body(*(kernel.args[i] for i in range(kernel.num_args)))
        return FakeEvent(self, number)

    def enqueue_copy(self, queue, dest, src, is_blocking=True):
        self.calls.append(("copy", src.label))
        dest[...] = src.data.view(dest.dtype).reshape(dest.shape)

    def names(self, *kinds):
        return [c for c in self.calls if c[0] in kinds]


def aplusb(a, b, c, n):
    x = a.data.view(np.float32)
    y = b.data.view(np.float32)
    z = c.data.view(np.float32)
    z[:n] = x[:n] + y[:n]


@pytest.fixture
def fake_cl(monkeypatch):
    fake = FakeOpenCL()
    for module in (errors, system, context, library, dispatch):
        monkeypatch.setattr(module, "cl", fake)
    return fake


@pytest.fixture
def gpu_device():
    return FakeDevice("Fake GPU ", cl.device_type.GPU)


@pytest.fixture
def cpu_device():
    return FakeDevice("Fake CPU", cl.device_type.CPU)


@pytest.fixture
def opencl_device():
    """
    A real OpenCL device, or skip the test if there is none.
    """
    from clbench.errors import StartupError
    from clbench.system import select_device

    try:
        _, device = select_device()
    except StartupError as e:
        pytest.skip(f"no OpenCL device: {e}")
    return device


ADD_SOURCE = """
__kernel void aplusb(__global const float *a,
                     __global const float *b,
                     __global float *c,
                     unsigned int n)
{
    const unsigned int index = get_global_id(0);
    if (index >= n)
        return;
    c[index] = a[index] + b[index];
}
"""


@pytest.fixture
def add_source():
    return ADD_SOURCE
