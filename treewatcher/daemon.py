import logging
import os
import signal
import time

import daemon
import psutil
from daemon.pidfile import PIDLockFile

from treewatcher import logger
from treewatcher.config import get_log_level
from treewatcher.loop import cancel_on_signal, run_watcher
from treewatcher.output import LoggingReporter

DAEMON_LOG = "daemon.log"
EVENTS_LOG = "events.log"


def setup_daemon_logger(cfg, log_dir, root):
    """
    Set up logging for the daemon.

    Diagnostics go to daemon.log under the treewatcher package logger;
    reported changes go to events.log through a separate logger.

    Args:
        cfg (dict): The loaded configuration dictionary
        log_dir (str): Directory for the log files
        root (str): Directory being watched

    Returns:
        tuple: (daemon logger, events logger)
    """
    level = get_log_level(cfg)
    daemon_logger = logger.setup_logger("treewatcher", log_dir, DAEMON_LOG, level=level, console=False)
    events_logger = logger.setup_logger(
        "treewatcher-events", log_dir, EVENTS_LOG, level=logging.INFO, console=False
    )
    events_logger.propagate = False

    daemon_logger.info(f"Log directory: {log_dir}")
    if logger.is_within(log_dir, root):
        daemon_logger.warning(
            f"Log directory {log_dir} is inside the watched tree {root}; "
            "every log write will be reported as a change"
        )
    return daemon_logger, events_logger


def read_pid(pid_file):
    """Return the pid recorded in *pid_file*, or None."""
    if not os.path.exists(pid_file):
        return None
    with open(pid_file, "r") as f:
        content = f.read().strip()
    try:
        return int(content)
    except ValueError:
        return None


def find_daemon_process(pid_file):
    """Return the psutil.Process of a running daemon, or None."""
    pid = read_pid(pid_file)
    if pid is None:
        return None
    try:
        proc = psutil.Process(pid)
        if not proc.is_running() or proc.status() == psutil.STATUS_ZOMBIE:
            return None
        return proc
    except psutil.NoSuchProcess:
        return None


def describe_process(proc):
    """Collect the status details shown by `treewatcher status`."""
    try:
        root = proc.cwd()
    except psutil.AccessDenied:
        root = "unknown"
    return {
        "PID": proc.pid,
        "Watched Root": root,
        "CPU %": proc.cpu_percent(interval=0.1),
        "Memory %": round(proc.memory_percent(), 2),
        "Memory RSS": proc.memory_info().rss,
        "Threads": proc.num_threads(),
        "Started At": time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(proc.create_time())),
    }


def log_daemon_status(daemon_logger):
    """
    Log status information about the daemon process using psutil.
    """
    try:
        status_info = describe_process(psutil.Process(os.getpid()))
        daemon_logger.info(
            "Daemon Status:\n" + "\n".join(f"{k}: {v}" for k, v in status_info.items())
        )
    except psutil.Error as e:
        daemon_logger.error(f"Error logging daemon status: {e}")


def run_daemon(cfg, root, pid_file, log_dir):
    """
    Detach from the terminal and watch *root* until SIGTERM or until every
    watched directory is gone.
    """
    root = os.path.abspath(root)
    daemon_logger, events_logger = setup_daemon_logger(cfg, log_dir, root)

    context = daemon.DaemonContext(
        pidfile=PIDLockFile(pid_file),
        working_directory=root,
        files_preserve=[
            handler.stream.fileno()
            for log in (daemon_logger, events_logger)
            for handler in log.handlers
            if hasattr(handler, "stream") and hasattr(handler.stream, "fileno")
        ],
    )
    context.signal_map[signal.SIGTERM] = cancel_on_signal

    with context:
        try:
            daemon_logger.info(f"Daemon started, watching {root}")
            log_daemon_status(daemon_logger)
            run_watcher(root, LoggingReporter(events_logger), logger=daemon_logger)
            daemon_logger.info("Daemon exiting")
        except Exception as e:
            daemon_logger.error(f"Fatal error in daemon: {e}", exc_info=True)
            raise
