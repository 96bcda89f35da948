"""
Drives one benchmark run: device selection through result verification.
"""

from dataclasses import dataclass
from logging import getLogger

import numpy as np

from .config import Clbench
from .context import ComputeContext
from .dispatch import Dispatcher
from .library import Library, load_source, packaged_kernel_file
from .resources import ResourceStack
from .system import device_type_name, log_system_info, select_device
from .timing import Timer, bandwidth, throughput
from .verify import VerificationResult, verify

logger = getLogger(__name__)


@dataclass
class RunSummary:
    """
    Reduced statistics of a benchmark run

    Lap times are in seconds, throughput in element operations per second,
    and bandwidths in GiB/s.
    """

    device_name: str
    device_type: str
    num_elements: int
    iterations: int
    global_size: int
    kernel_lap_avg: float
    kernel_lap_std: float
    transfer_lap_avg: float
    transfer_lap_std: float
    throughput: float
    compute_bandwidth: float
    transfer_bandwidth: float
    verification: VerificationResult

    @property
    def passed(self):
        return self.verification.passed

    def __rich_console__(self, *args):
        from rich.table import Table

        table = Table(
            title=f"{self.device_name} ({self.device_type})",
            title_justify="left",
            show_header=False,
        )
        table.add_column("metric", style="cyan")
        table.add_column("value", style="green")
        table.add_row("elements", f"{self.num_elements} (global size {self.global_size})")
        table.add_row("iterations", str(self.iterations))
        table.add_row(
            "kernel time",
            f"{self.kernel_lap_avg:.6f} +- {self.kernel_lap_std:.6f} s",
        )
        table.add_row("throughput", f"{self.throughput / 1e9:.3f} billion ops/s")
        table.add_row("compute bandwidth", f"{self.compute_bandwidth:.3f} GiB/s")
        table.add_row(
            "transfer time",
            f"{self.transfer_lap_avg:.6f} +- {self.transfer_lap_std:.6f} s",
        )
        table.add_row("transfer bandwidth", f"{self.transfer_bandwidth:.3f} GiB/s")
        yield table


def generate_data(num_elements, seed):
    """
    Return two pseudo-random float32 arrays of length `num_elements`.
    """
    rng = np.random.default_rng(seed)
    a = rng.random(num_elements, dtype=np.float32)
    b = rng.random(num_elements, dtype=np.float32)
    return a, b


def run_benchmark(config: Clbench) -> RunSummary:
    """
    Run the benchmark described by `config`, and return its summary.

    Every OpenCL object created along the way is owned by one
    `ResourceStack`, so all of them are released when this function returns
    or raises. A failed verification does not raise here; it is reported in
    the summary, and it is up to the caller to treat it as fatal.
    """
    bench = config.benchmark
    kernel_file = bench.kernel_file or packaged_kernel_file("aplusb")
    source = load_source(kernel_file)

    _, device = select_device(
        preference=config.device.device_type,
        platform_index=config.device.platform_index,
        device_index=config.device.device_index,
    )
    log_system_info(device)

    n = bench.num_elements
    a, b = generate_data(n, bench.seed)
    c = np.empty_like(a)
    logger.info(f"data generated for n={n}")

    with ResourceStack() as resources:
        ctx = ComputeContext.create(device, resources)
        a_gpu = ctx.upload(a, "read-only")
        b_gpu = ctx.upload(b, "read-only")
        c_gpu = ctx.allocate(n, c.dtype, "write-only")

        library = Library(
            ctx.context,
            device,
            source,
            resources,
            options=bench.build_options or None,
        )
        dispatcher = Dispatcher(
            ctx.queue,
            library.kernel(bench.entry_point),
            n,
            bench.local_group_size,
        )
        resources.defer(dispatcher.detach)

        kernel_timer = Timer()
        dispatcher.run((a_gpu, b_gpu, c_gpu, np.uint32(n)), bench.iterations, kernel_timer)

        transfer_timer = Timer()
        for _ in range(bench.iterations):
            ctx.download(c_gpu, c)
            transfer_timer.next_lap()

    kernel_avg = kernel_timer.lap_avg()
    transfer_avg = transfer_timer.lap_avg()

    logger.info(f"kernel average time: {kernel_avg:.6f} +- {kernel_timer.lap_std():.6f} s")
    logger.info(f"transfer average time: {transfer_avg:.6f} s")

    return RunSummary(
        device_name=device.name.strip(),
        device_type=device_type_name(device),
        num_elements=n,
        iterations=bench.iterations,
        global_size=dispatcher.global_size[0],
        kernel_lap_avg=kernel_avg,
        kernel_lap_std=kernel_timer.lap_std(),
        transfer_lap_avg=transfer_avg,
        transfer_lap_std=transfer_timer.lap_std(),
        throughput=throughput(n, kernel_avg),
        compute_bandwidth=bandwidth(3 * a.nbytes, kernel_avg),
        transfer_bandwidth=bandwidth(c.nbytes, transfer_avg),
        verification=verify(c, a, b),
    )
