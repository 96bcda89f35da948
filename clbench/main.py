"""
clbench main program
"""

from argparse import ArgumentParser, SUPPRESS
from logging import getLogger

from pydantic import ValidationError

from .config import Benchmark, Device, add_config_arguments, make_config, unflatten
from .errors import BenchmarkError, BuildError

logger = getLogger(__name__)


def init_logging(level):
    from rich.console import Console
    from rich.logging import RichHandler

    console = Console()
    handler = RichHandler(omit_repeated_times=False, console=console)
    logger = getLogger("clbench")
    logger.addHandler(handler)
    logger.setLevel(level.upper())

    return console


def report_error(console, e):
    """
    Print a benchmark failure with whatever diagnostics it carries.
    """
    console.print(f"[red]error[/red]: {e}")

    if e.location:
        code = getattr(e, "code", None)
        console.print(f"status code {code} at {e.location}")
    if isinstance(e, BuildError):
        console.print("build log:")
        console.print(e.log, markup=False, highlight=False)


def run(args=None, console=None, parser=None):
    """
    Run the kernel benchmark and report its timings
    """
    if parser:
        config = parser.add_argument_group("config")
        add_config_arguments(config)

    else:
        from .benchmark import run_benchmark

        overrides = unflatten(
            {k: v for k, v in vars(args).items() if v is not None and k[0] != "_"}
        )
        summary = run_benchmark(make_config(overrides))

        console.print(summary)

        if summary.passed:
            console.print("[green]results match[/green]")
        else:
            console.print(f"[red]results differ[/red]: {summary.verification}")
            summary.verification.raise_for_mismatch()


def devices(args=None, console=None, parser=None):
    """
    List the OpenCL platforms and their devices
    """
    if parser:
        pass
    else:
        from rich.table import Table
        from .system import describe_platforms

        platforms = describe_platforms()
        console.print(f"Number of OpenCL platforms: {len(platforms)}")

        for i, platform in enumerate(platforms):
            table = Table(
                title=(
                    f"Platform #{i}: {platform['name']} "
                    f"({platform['vendor']}, {platform['version']})"
                ),
                title_justify="left",
            )
            table.add_column("#")
            table.add_column("device", style="cyan")
            table.add_column("type", style="green")
            table.add_column("memory (MB)", justify="right")
            table.add_column("compute units", justify="right")
            table.add_column("max group", justify="right")
            table.add_column("version", style="magenta")

            for j, device in enumerate(platform["devices"]):
                table.add_row(
                    str(j),
                    device["name"],
                    device["type"],
                    str(device["memory_mb"]),
                    str(device["compute_units"]),
                    str(device["max_work_group_size"]),
                    device["version"],
                )
            console.print(table)


def system(args=None, console=None, parser=None):
    """
    Print information about the host system and library versions
    """
    if parser:
        pass
    else:
        from rich.pretty import Pretty
        from .system import system_info

        console.print(Pretty(system_info()))


def config(args=None, console=None, parser=None):
    """
    Print the configuration fields and their defaults
    """
    if parser:
        pass
    else:
        console.print(Device().table())
        console.print()
        console.print(Benchmark().table())


def argument_parser():
    """
    Create an argument parser instance for running from the command line
    """
    parser = ArgumentParser(
        prog="clbench",
        usage=SUPPRESS,
        description="clbench is a micro-benchmark harness for OpenCL kernels",
    )
    parser.set_defaults(_command=None)
    parser.add_argument(
        "--log-level",
        dest="_log_level",
        default="warning",
        choices=("debug", "info", "warning", "error", "critical"),
        help="log messages at and above this severity level",
    )

    subparsers = parser.add_subparsers()
    _run = subparsers.add_parser("run", usage=SUPPRESS, help=run.__doc__)
    _devices = subparsers.add_parser("devices", usage=SUPPRESS, help=devices.__doc__)
    _sys = subparsers.add_parser("sys", usage=SUPPRESS, help=system.__doc__)
    _config = subparsers.add_parser("config", usage=SUPPRESS, help=config.__doc__)

    _run.set_defaults(_command=run)
    _devices.set_defaults(_command=devices)
    _sys.set_defaults(_command=system)
    _config.set_defaults(_command=config)

    run(parser=_run)
    devices(parser=_devices)
    system(parser=_sys)
    config(parser=_config)

    return parser


def main(argv=None):
    """
    Main clbench entry point and command line interface

    Returns the process exit status: 0 on success, 1 if the run failed.
    """
    parser = argument_parser()
    args = parser.parse_args(argv)
    console = init_logging(args._log_level)

    if not args._command:
        parser.print_help()
        return 0

    try:
        args._command(args, console)
        return 0

    except ValidationError as e:
        console.print("[red]configuration error[/red]:")
        console.print(str(e), markup=False)

    except BenchmarkError as e:
        report_error(console, e)

    except KeyboardInterrupt:
        console.print()
        console.print("ctrl-c interrupt")

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
