"""
Functions for querying compute platforms and devices, and the host system.
"""

import logging
import multiprocessing

import pyopencl as cl

from . import __version__
from .errors import StartupError, safe_call

logger = logging.getLogger(__name__)


DEVICE_TYPE_NAMES = {
    cl.device_type.CPU: "cpu",
    cl.device_type.GPU: "gpu",
    cl.device_type.ACCELERATOR: "accelerator",
    cl.device_type.DEFAULT: "default",
}


def device_type_name(device):
    """
    Return a short name for the device type, e.g. "gpu".
    """
    names = [v for k, v in DEVICE_TYPE_NAMES.items() if device.type & k]
    return "|".join(names) or "unknown"


def is_gpu_class(device):
    return bool(device.type & (cl.device_type.GPU | cl.device_type.ACCELERATOR))


def is_cpu_class(device):
    return bool(device.type & cl.device_type.CPU)


def get_platforms():
    """
    Return the list of OpenCL platforms, raising `StartupError` if none.

    A missing ICD loader or vendor driver surfaces from `pyopencl` as an
    error on the first platform query.
    """
    try:
        platforms = cl.get_platforms()
    except cl.Error as e:
        raise StartupError(f"can't init OpenCL driver: {e}") from e

    if not platforms:
        raise StartupError("no OpenCL platforms found")

    logger.debug(f"number of OpenCL platforms: {len(platforms)}")
    return platforms


def get_devices(platform):
    """
    Return all devices of a platform; an empty list if it has none.
    """
    try:
        return platform.get_devices()
    except cl.Error as e:
        logger.debug(f"platform {platform.name} has no devices: {e}")
        return list()


def select_device(preference="gpu", platform_index=None, device_index=None):
    """
    Return a `(platform, device)` pair for the benchmark to run on.

    With no explicit indices, a GPU-class device is preferred and a CPU
    device is the fallback; `preference="cpu"` reverses that order. If
    `platform_index` is given, only that platform is searched, and if
    `device_index` is also given, exactly that device is returned.
    """
    if preference not in ("gpu", "cpu"):
        raise ValueError(f"unknown device preference {preference}, must be [gpu|cpu]")

    platforms = get_platforms()

    if platform_index is not None:
        if not 0 <= platform_index < len(platforms):
            raise StartupError(
                f"platform index {platform_index} out of range "
                f"({len(platforms)} platforms)"
            )
        platforms = [platforms[platform_index]]

    if device_index is not None:
        if platform_index is None:
            raise ValueError("device_index requires platform_index")
        (platform,) = platforms
        devices = get_devices(platform)
        if not 0 <= device_index < len(devices):
            raise StartupError(
                f"device index {device_index} out of range "
                f"({len(devices)} devices on {platform.name})"
            )
        return platform, devices[device_index]

    candidates = [(p, d) for p in platforms for d in get_devices(p)]

    if preference == "gpu":
        tiers = (is_gpu_class, is_cpu_class)
    else:
        tiers = (is_cpu_class, is_gpu_class)

    for accept in tiers:
        for platform, device in candidates:
            if accept(device):
                logger.info(
                    f"select {device_type_name(device)} device {device.name.strip()} "
                    f"on platform {platform.name.strip()}"
                )
                return platform, device

    raise StartupError("no GPU or CPU OpenCL device found")


def describe_device(device):
    return dict(
        name=device.name.strip(),
        type=device_type_name(device),
        memory_mb=device.global_mem_size // (1024 * 1024),
        compute_units=device.max_compute_units,
        max_work_group_size=device.max_work_group_size,
        version=device.version.strip(),
    )


def describe_platforms():
    """
    Return a list of dicts describing each platform and its devices.
    """
    platforms = list()

    for platform in get_platforms():
        devices = get_devices(platform)
        platforms.append(
            dict(
                name=safe_call(platform.get_info, cl.platform_info.NAME).strip(),
                vendor=safe_call(platform.get_info, cl.platform_info.VENDOR).strip(),
                version=safe_call(platform.get_info, cl.platform_info.VERSION).strip(),
                devices=[describe_device(d) for d in devices],
            )
        )
    return platforms


def system_info():
    """
    Return a dict of host, code, and library version details.
    """
    from platform import node, machine, processor, platform, system, release
    from datetime import datetime
    import numpy

    host = dict()
    host["node"] = node()
    host["machine"] = machine()
    host["processor"] = processor()
    host["cpu_count"] = multiprocessing.cpu_count()
    host["platform"] = platform()
    host["system"] = system()
    host["release"] = release()

    code = dict()
    code["version"] = __version__
    code["numpy"] = numpy.__version__
    code["pyopencl"] = cl.VERSION_TEXT

    return dict(host=host, code=code, datetime=str(datetime.now()))


def log_system_info(device=None):
    """
    Log relevant details of the system's compute capabilities.
    """
    if device is not None:
        info = describe_device(device)
        logger.info(
            f"device: {info['name']} ({info['type']}, {info['memory_mb']} MB, "
            f"{info['compute_units']} compute units)"
        )
    logger.info(f"compute cores: {multiprocessing.cpu_count()}")
    logger.info(f"pyopencl {cl.VERSION_TEXT}")
