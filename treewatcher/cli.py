import os
import signal

import click
import psutil
import toml
from rich.console import Console
from rich.table import Table

from treewatcher import config
from treewatcher import daemon as daemon_module
from treewatcher import logger
from treewatcher.loop import cancel_on_signal, run_watcher
from treewatcher.output import OUTPUT_FORMATS, ConsoleReporter
from treewatcher.service import InotifyWatchService, WatchServiceInitError

LOG_FILENAME = "treewatcher.log"


@click.group(invoke_without_command=True)
@click.option("--config", "-c", "config_path", default=None, help="Path to configuration TOML file.")
@click.option("--debug", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx, config_path, debug):
    """
    treewatcher CLI: report changes below the current directory.

    Without a command, watches the current directory in the foreground.
    """
    try:
        cfg = config.load_config(config_path)
        if debug:
            cfg["logging"]["level"] = "DEBUG"
    except (OSError, toml.TomlDecodeError, config.ConfigError) as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        ctx.exit(1)
    ctx.obj = {"config": cfg, "config_path": config_path, "debug": debug}

    if ctx.invoked_subcommand is None:
        ctx.invoke(watch)


@main.command()
@click.option(
    "--format", "-f", "out_format", default=None,
    type=click.Choice(OUTPUT_FORMATS, case_sensitive=False),
    help="Output format for reported changes.",
)
@click.pass_context
def watch(ctx, out_format):
    """
    Watch the current directory tree in the foreground.
    """
    cfg = ctx.obj["config"]
    root = os.getcwd()
    log_dir = config.get_log_dir(cfg)
    log = logger.setup_logger(
        "treewatcher",
        log_dir,
        LOG_FILENAME,
        level=config.get_log_level(cfg),
        console=cfg["logging"].get("console", True),
    )
    if log_dir and logger.is_within(log_dir, root):
        log.warning(
            f"Log directory {log_dir} is inside the watched tree; "
            "every log write will be reported as a change"
        )

    reporter = ConsoleReporter(fmt=(out_format or cfg["output"]["format"]).lower())
    previous_handler = signal.signal(signal.SIGTERM, cancel_on_signal)
    try:
        run_watcher(root, reporter, service_factory=InotifyWatchService, logger=log)
    except WatchServiceInitError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    finally:
        signal.signal(signal.SIGTERM, previous_handler)


@main.command()
@click.pass_context
def start(ctx):
    """
    Start watching the current directory as a daemon.
    """
    cfg = ctx.obj["config"]
    pid_file = config.get_pid_file(cfg)
    proc = daemon_module.find_daemon_process(pid_file)
    if proc is not None:
        click.echo(f"Daemon is already running (pid {proc.pid}).")
        return
    if os.path.exists(pid_file):
        os.remove(pid_file)
    os.makedirs(os.path.dirname(pid_file), exist_ok=True)

    root = os.getcwd()
    log_dir = config.get_log_dir(cfg) or config.get_state_dir(cfg)
    click.echo(f"Starting daemon watching {root} (logs in {log_dir})...")
    daemon_module.run_daemon(cfg, root, pid_file, log_dir)


@main.command()
@click.pass_context
def stop(ctx):
    """
    Stop the treewatcher daemon.
    """
    pid_file = config.get_pid_file(ctx.obj["config"])
    proc = daemon_module.find_daemon_process(pid_file)
    if proc is None:
        click.echo("Daemon is not running.")
        return
    try:
        proc.send_signal(signal.SIGTERM)
        click.echo(f"Sent SIGTERM to daemon (pid {proc.pid}).")
        proc.wait(timeout=10)
    except psutil.NoSuchProcess:
        pass
    except psutil.TimeoutExpired:
        click.echo("Daemon did not exit within 10 seconds.", err=True)
        ctx.exit(1)
    if os.path.exists(pid_file):
        os.remove(pid_file)


@main.command()
@click.pass_context
def status(ctx):
    """
    Check the status of the treewatcher daemon.
    Displays the watched root and process info (memory, CPU, threads, start time).
    """
    pid_file = config.get_pid_file(ctx.obj["config"])
    proc = daemon_module.find_daemon_process(pid_file)
    if proc is None:
        click.echo("Daemon is not running.")
        return

    try:
        info = daemon_module.describe_process(proc)
    except psutil.NoSuchProcess:
        click.echo("Daemon process not found.")
        return

    status_table = Table(title="treewatcher Daemon Status")
    status_table.add_column("Property", style="cyan")
    status_table.add_column("Value", style="magenta")
    for key, value in info.items():
        status_table.add_row(key, str(value))
    status_table.add_row("PID File", pid_file)
    Console().print(status_table)


@main.command()
@click.pass_context
def show_config(ctx):
    """
    Show the effective configuration.
    """
    cfg = ctx.obj["config"]
    click.echo(f"# source: {cfg.get('__config_path__') or 'defaults'}")
    click.echo(toml.dumps({k: v for k, v in cfg.items() if not k.startswith("__")}))


if __name__ == "__main__":
    main()
