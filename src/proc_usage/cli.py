"""CLI commands for proc-usage."""

import click

from proc_usage.config import Config


@click.group()
@click.version_option(package_name="proc-usage")
def main() -> None:
    """Sample CPU and memory usage of a process and its threads."""
    pass


def _load_config() -> Config:
    """Load config and set up structured logging, exiting on an invalid file."""
    from proc_usage import logging as console

    try:
        cfg = Config.load()
    except ValueError as e:
        console.config_invalid(str(e))
        raise SystemExit(1)
    console.configure(cfg)
    return cfg


def _open_sampler(cfg: Config, pid: int | None):
    """Create a sampler for pid (or the configured pid), exiting if unavailable."""
    from proc_usage import logging as console
    from proc_usage.errors import UsageError
    from proc_usage.sampler import create_sampler

    target = pid if pid is not None else cfg.sampler.pid
    try:
        return create_sampler(target or None, clamp_negative=cfg.sampler.clamp_negative)
    except UsageError as e:
        console.sampler_unavailable(str(e))
        raise SystemExit(1)


def _announce(sampler) -> None:
    from proc_usage import logging as console

    console.sampler_started(sampler.pid, sampler.core_count, str(sampler.total_memory))


def _watch(
    cfg: Config,
    sampler,
    interval: float,
    count: int | None,
    threads: bool,
    children: bool,
) -> None:
    """Run the monitor loop in the foreground until count rounds, Ctrl-C or SIGTERM."""
    import signal

    from proc_usage import logging as console
    from proc_usage.formatting import render_usage
    from proc_usage.monitor import UsageMonitor

    out = console.get_console()

    def on_sample(usage, elapsed_ms: float) -> None:
        if cfg.monitor.clear_screen:
            out.clear()
        console.sample_timing(elapsed_ms)
        out.print(render_usage(usage, max_threads=cfg.monitor.max_threads_shown))

    def on_error(error) -> None:
        console.sample_failed(error.pid, error.causes)

    monitor = UsageMonitor(
        sampler,
        interval=interval,
        on_sample=on_sample,
        on_error=on_error,
        include_threads=threads,
        include_children=children,
    )

    def handle_sigterm(signum, frame) -> None:
        console.signal_received(signal.Signals(signum).name)
        monitor.stop()

    previous = signal.signal(signal.SIGTERM, handle_sigterm)
    try:
        monitor.run(count)
    except KeyboardInterrupt:
        console.signal_received("SIGINT")
    finally:
        signal.signal(signal.SIGTERM, previous)
    console.monitor_stopped(monitor.rounds, monitor.failures)


@main.command()
@click.option("--pid", "-p", type=int, default=None, help="Process to sample (default: config)")
@click.option(
    "--delay",
    "-d",
    type=float,
    default=1.0,
    show_default=True,
    help="Seconds between the baseline and the reported sample",
)
@click.option("--no-threads", is_flag=True, help="Skip per-thread usage")
@click.option("--children", is_flag=True, help="Include child processes")
@click.option("--json", "as_json", is_flag=True, help="Print usage as JSON")
def sample(
    pid: int | None, delay: float, no_threads: bool, children: bool, as_json: bool
) -> None:
    """Take two samples DELAY seconds apart and print the second."""
    import json
    import time

    from proc_usage import logging as console
    from proc_usage.errors import SamplingError
    from proc_usage.formatting import render_usage

    if delay < 0:
        raise click.BadParameter("must be >= 0", param_hint="--delay")

    cfg = _load_config()
    include_threads = cfg.sampler.include_threads and not no_threads
    include_children = children or cfg.sampler.include_children

    with _open_sampler(cfg, pid) as sampler:
        if not as_json:
            _announce(sampler)
        try:
            sampler.current_process_usage(include_threads, include_children)
            time.sleep(delay)
            usage = sampler.current_process_usage(include_threads, include_children)
        except SamplingError as e:
            console.sample_failed(e.pid, e.causes)
            raise SystemExit(1)

    if as_json:
        click.echo(json.dumps(usage.to_dict(), indent=2))
    else:
        console.get_console().print(
            render_usage(usage, max_threads=cfg.monitor.max_threads_shown)
        )


@main.command()
@click.option("--pid", "-p", type=int, default=None, help="Process to watch (default: config)")
@click.option(
    "--interval",
    "-i",
    type=float,
    default=None,
    help="Seconds between samples (default: config)",
)
@click.option("--count", "-n", type=int, default=None, help="Stop after N samples")
@click.option("--no-threads", is_flag=True, help="Skip per-thread usage")
@click.option("--children", is_flag=True, help="Include child processes")
def watch(
    pid: int | None, interval: float | None, count: int | None, no_threads: bool, children: bool
) -> None:
    """Sample a process repeatedly until interrupted."""
    if interval is not None and interval <= 0:
        raise click.BadParameter("must be > 0", param_hint="--interval")

    cfg = _load_config()
    with _open_sampler(cfg, pid) as sampler:
        _announce(sampler)
        _watch(
            cfg,
            sampler,
            interval=interval or cfg.monitor.interval,
            count=count,
            threads=cfg.sampler.include_threads and not no_threads,
            children=children or cfg.sampler.include_children,
        )


@main.command()
@click.option(
    "--cpu-threads",
    type=int,
    default=1,
    show_default=True,
    help="CPU-bound worker threads (0 to disable)",
)
@click.option(
    "--memory-threads",
    type=int,
    default=1,
    show_default=True,
    help="Allocating worker threads (0 to disable)",
)
@click.option(
    "--duration",
    type=float,
    default=10.0,
    show_default=True,
    help="Seconds to run the load",
)
@click.option(
    "--interval",
    "-i",
    type=float,
    default=1.0,
    show_default=True,
    help="Seconds between samples",
)
def load(cpu_threads: int, memory_threads: int, duration: float, interval: float) -> None:
    """Generate synthetic load in this process and watch it."""
    import math

    from proc_usage import logging as console
    from proc_usage.loadsim import LoadSimulator

    if cpu_threads < 0 or memory_threads < 0:
        raise click.BadParameter("thread counts must be >= 0")
    if interval <= 0 or duration <= 0:
        raise click.BadParameter("duration and interval must be > 0")

    cfg = _load_config()
    with _open_sampler(cfg, 0) as sampler, LoadSimulator() as simulator:
        _announce(sampler)
        if cpu_threads:
            simulator.start_cpu_load(cpu_threads)
        if memory_threads:
            simulator.start_memory_load(memory_threads)
        console.load_started(cpu_threads, memory_threads)
        _watch(
            cfg,
            sampler,
            interval=interval,
            count=max(1, math.ceil(duration / interval)),
            threads=True,
            children=False,
        )
    console.load_stopped()


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
def config_init(force: bool) -> None:
    """Write a config file with default values."""
    from proc_usage import logging as console

    cfg = Config()
    if cfg.config_path.exists() and not force:
        console.warn(f"Config already exists at {cfg.config_path} (use --force to overwrite)")
        raise SystemExit(1)
    cfg.save()
    console.config_created(str(cfg.config_path))


@config.command("show")
def config_show() -> None:
    """Display the effective configuration."""
    from dataclasses import fields

    from proc_usage import logging as console

    try:
        cfg = Config.load()
    except ValueError as e:
        console.config_invalid(str(e))
        raise SystemExit(1)

    click.echo(f"Config file: {cfg.config_path}")
    click.echo(f"Exists: {cfg.config_path.exists()}")
    click.echo(f"Log file: {cfg.log_path}")
    for name in ("sampler", "monitor", "logging"):
        section = getattr(cfg, name)
        click.echo()
        click.echo(f"[{name}]")
        for f in fields(section):
            click.echo(f"  {f.name} = {getattr(section, f.name)!r}")
