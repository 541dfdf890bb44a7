import os

import psutil

from treewatcher import daemon as daemon_module


def test_read_pid(tmp_path):
    pid_file = tmp_path / "treewatcher.pid"
    assert daemon_module.read_pid(str(pid_file)) is None

    pid_file.write_text("1234\n")
    assert daemon_module.read_pid(str(pid_file)) == 1234

    pid_file.write_text("garbage")
    assert daemon_module.read_pid(str(pid_file)) is None


def test_find_daemon_process(tmp_path):
    pid_file = tmp_path / "treewatcher.pid"
    pid_file.write_text(str(os.getpid()))

    proc = daemon_module.find_daemon_process(str(pid_file))
    assert proc is not None
    assert proc.pid == os.getpid()


def test_find_daemon_process_for_dead_pid(tmp_path, monkeypatch):
    pid_file = tmp_path / "treewatcher.pid"
    pid_file.write_text("4242")

    def no_such_process(pid):
        raise psutil.NoSuchProcess(pid)

    monkeypatch.setattr(daemon_module.psutil, "Process", no_such_process)
    assert daemon_module.find_daemon_process(str(pid_file)) is None


def test_describe_process_reports_watched_root(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    info = daemon_module.describe_process(psutil.Process(os.getpid()))

    assert info["PID"] == os.getpid()
    assert os.path.realpath(info["Watched Root"]) == os.path.realpath(str(tmp_path))
    assert "Started At" in info


def test_daemon_logger_warns_about_log_dir_inside_root(tmp_path):
    cfg = {"logging": {"level": "INFO"}}
    log_dir = tmp_path / "logs"

    daemon_logger, events_logger = daemon_module.setup_daemon_logger(cfg, str(log_dir), str(tmp_path))

    assert (log_dir / daemon_module.DAEMON_LOG).exists()
    assert (log_dir / daemon_module.EVENTS_LOG).exists()
    assert not events_logger.propagate
    assert "inside the watched tree" in (log_dir / daemon_module.DAEMON_LOG).read_text()
