import copy
import logging
import os

import toml

from treewatcher.output import OUTPUT_FORMATS

DEFAULT_CONFIG_PATH = "./config.toml"
ENV_CONFIG_DIR_VAR = "TREEWATCHER_CONFIG_DIR"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_CONFIG = {
    "logging": {"level": "INFO", "log_dir": "", "console": True},
    "output": {"format": "text"},
    "daemon": {"state_dir": "~/.treewatcher", "pid_file": "treewatcher.pid"},
}


class ConfigError(ValueError):
    """Raised for configuration values treewatcher cannot use."""

    pass


def load_config(cli_config_path=None):
    """
    Load configuration from a TOML file, merged over the defaults.

    Precedence:
      1. cli_config_path if provided (it must exist).
      2. Environment variable TREEWATCHER_CONFIG_DIR (looking for config.toml).
      3. Default to ./config.toml.

    Implicit locations that do not exist yield the defaults.

    Returns:
        dict: The configuration settings. "__config_path__" holds the file
        that was read, or None.
    """
    if cli_config_path:
        config_path = cli_config_path
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
    elif os.environ.get(ENV_CONFIG_DIR_VAR):
        config_path = os.path.join(os.environ[ENV_CONFIG_DIR_VAR], "config.toml")
    else:
        config_path = DEFAULT_CONFIG_PATH

    config_data = {}
    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            config_data = toml.load(f)
    else:
        config_path = None

    cfg = merge_config(DEFAULT_CONFIG, config_data)
    validate_config(cfg)
    cfg["__config_path__"] = os.path.abspath(config_path) if config_path else None
    return cfg


def merge_config(defaults, overrides):
    """
    Merge *overrides* over *defaults* section by section.

    Raises:
        ConfigError: If a section that holds settings is not a table.
    """
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(merged.get(key), dict):
            if not isinstance(value, dict):
                raise ConfigError(f"Section [{key}] must be a table, got: {value!r}")
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def validate_config(cfg):
    """
    Check the values treewatcher acts on. The output format is normalized
    to lower case.

    Raises:
        ConfigError: On an unknown logging level or output format.
    """
    level = str(cfg["logging"].get("level", "INFO")).upper()
    if level not in LOG_LEVELS:
        raise ConfigError(f"Unknown logging level: {cfg['logging'].get('level')}")
    fmt = str(cfg["output"].get("format", "text")).lower()
    if fmt not in OUTPUT_FORMATS:
        raise ConfigError(
            f"Unknown output format: {cfg['output'].get('format')} "
            f"(expected one of {', '.join(OUTPUT_FORMATS)})"
        )
    cfg["output"]["format"] = fmt


def get_log_level(cfg):
    return getattr(logging, str(cfg["logging"].get("level", "INFO")).upper())


def get_log_dir(cfg):
    """
    Directory for log files of foreground runs, or None for console only.

    Relative paths are resolved against the directory of the config file.
    """
    log_dir = cfg["logging"].get("log_dir")
    if not log_dir:
        return None
    log_dir = os.path.expanduser(log_dir)
    if not os.path.isabs(log_dir):
        config_dir = os.path.dirname(cfg.get("__config_path__") or os.path.abspath(DEFAULT_CONFIG_PATH))
        log_dir = os.path.join(config_dir, log_dir)
    return os.path.abspath(log_dir)


def get_state_dir(cfg):
    """Directory holding the log files and pid file of detached runs."""
    return os.path.abspath(os.path.expanduser(cfg["daemon"].get("state_dir", "~/.treewatcher")))


def get_pid_file(cfg):
    pid_file = os.path.expanduser(cfg["daemon"].get("pid_file", "treewatcher.pid"))
    if os.path.isabs(pid_file):
        return pid_file
    return os.path.join(get_state_dir(cfg), pid_file)
