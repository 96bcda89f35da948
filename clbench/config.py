from typing import Literal, Optional
from pydantic import Field
from .schema import schema


@schema
class Device:
    """
    Choice of the OpenCL device to run on

    By default a GPU-class device is chosen if one exists, otherwise a CPU
    device. Explicit indices refer to the listing printed by 'clbench
    devices'.

    Fields
    ------

    device_type:     preferred kind of device (gpu|cpu)
    platform_index:  index of the platform to search, or all platforms
    device_index:    index of the device on the chosen platform
    """

    device_type: Literal["gpu", "cpu"] = "gpu"
    platform_index: Optional[int] = Field(None, ge=0)
    device_index: Optional[int] = Field(None, ge=0)


@schema
class Benchmark:
    """
    Scenario of the benchmark run

    The kernel is launched over num_elements work-items (rounded up to a
    multiple of the local group size) once per iteration. Host data is
    pseudo-random, generated from the given seed.

    Fields
    ------

    kernel_file:       path to the kernel source, or the packaged aplusb.cl
    entry_point:       name of the kernel function
    num_elements:      number of elements in each array
    iterations:        number of timed kernel launches and transfers
    local_group_size:  number of work-items in a local group
    seed:              seed of the pseudo-random input data
    build_options:     extra options passed to the OpenCL compiler
    """

    kernel_file: Optional[str] = None
    entry_point: str = "aplusb"
    num_elements: int = Field(100 * 1000 * 1000, ge=1, lt=2**32)
    iterations: int = Field(20, ge=1)
    local_group_size: int = Field(128, ge=1)
    seed: int = 239
    build_options: str = ""


@schema
class Clbench:
    """
    Top-level clbench configuration

    Fields
    ------

    device:     choice of the OpenCL device
    benchmark:  scenario of the benchmark run
    """

    device: Device = Device()
    benchmark: Benchmark = Benchmark()


def add_config_arguments(parser):
    """
    Add command line arguments which override configuration fields.

    Destinations are dotted paths into the `Clbench` schema, to be expanded
    with `unflatten`. Arguments default to `None`, meaning not given.
    """
    parser.add_argument(
        "--device-type",
        type=str,
        choices=Device.type_args("device_type"),
        help=Device.describe("device_type"),
        dest="device.device_type",
    )
    parser.add_argument(
        "--platform",
        type=int,
        metavar="P",
        help=Device.describe("platform_index"),
        dest="device.platform_index",
    )
    parser.add_argument(
        "--device",
        type=int,
        metavar="D",
        help=Device.describe("device_index"),
        dest="device.device_index",
    )
    parser.add_argument(
        "--kernel-file",
        type=str,
        metavar="PATH",
        help=Benchmark.describe("kernel_file"),
        dest="benchmark.kernel_file",
    )
    parser.add_argument(
        "--entry-point",
        type=str,
        metavar="NAME",
        help=Benchmark.describe("entry_point"),
        dest="benchmark.entry_point",
    )
    parser.add_argument(
        "--num-elements",
        "-n",
        type=int,
        metavar="N",
        help=Benchmark.describe("num_elements"),
        dest="benchmark.num_elements",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        metavar="I",
        help=Benchmark.describe("iterations"),
        dest="benchmark.iterations",
    )
    parser.add_argument(
        "--local-group-size",
        type=int,
        metavar="L",
        help=Benchmark.describe("local_group_size"),
        dest="benchmark.local_group_size",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help=Benchmark.describe("seed"),
        dest="benchmark.seed",
    )
    parser.add_argument(
        "--build-options",
        type=str,
        metavar="OPTS",
        help=Benchmark.describe("build_options"),
        dest="benchmark.build_options",
    )


def unflatten(d: dict) -> dict:
    """
    Create a nested dict from a flat one with keys like a.b.c
    """
    res = dict()
    for key, value in d.items():
        parts = key.split(".")
        d = res
        for part in parts[:-1]:
            if part not in d:
                d[part] = dict()
            d = d[part]
        d[parts[-1]] = value
    return res


def deep_update(d, u):
    """
    Update the nested dict `d` in place with the items of `u`.
    """
    for k, v in u.items():
        if isinstance(v, dict):
            d[k] = deep_update(d.get(k, dict()), v)
        else:
            d[k] = v
    return d


def make_config(overrides=None):
    """
    Return a `Clbench` instance with defaults updated by a nested dict.

    Raises a `pydantic.ValidationError` (a `ValueError`) for bad values.
    """
    from dataclasses import asdict

    s = asdict(Clbench())
    deep_update(s, overrides or dict())
    return Clbench(
        device=Device(**s["device"]),
        benchmark=Benchmark(**s["benchmark"]),
    )
