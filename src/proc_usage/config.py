"""Configuration system for proc-usage."""

import logging
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit


@dataclass
class SamplerConfig:
    """What to sample."""

    pid: int = 0  # 0 = the current process
    include_threads: bool = True
    include_children: bool = False
    clamp_negative: bool = True  # Report 0% instead of negative CPU on counter resets


@dataclass
class MonitorConfig:
    """Polling loop configuration."""

    interval: float = 1.0  # Seconds between sampling rounds
    max_threads_shown: int = 20  # Thread rows printed per round
    clear_screen: bool = True  # Redraw in place instead of scrolling


@dataclass
class LoggingConfig:
    """Structured log file configuration."""

    level: str = "INFO"
    log_max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    log_backup_count: int = 3  # Number of backup log files to keep


_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


@dataclass
class Config:
    """Main configuration container."""

    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "proc-usage"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "proc-usage"

    @property
    def log_path(self) -> Path:
        """Structured (JSON Lines) log path."""
        return self.state_dir / "sampler.log"

    @property
    def log_level(self) -> int:
        """Stdlib logging level for the configured level name."""
        return logging.getLevelName(self.logging.level)

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        for name in ("sampler", "monitor", "logging"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        Raises:
            ValueError: If the file cannot be parsed or holds invalid values.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        return cls(
            sampler=_load_sampler_config(data.get("sampler", {})),
            monitor=_load_monitor_config(data.get("monitor", {})),
            logging=_load_logging_config(data.get("logging", {})),
        )


def _load_sampler_config(data: dict) -> SamplerConfig:
    """Load sampler config from TOML data, using dataclass defaults for missing fields."""
    d = SamplerConfig()
    pid = data.get("pid", d.pid)
    if pid < 0:
        raise ValueError(f"pid must be >= 0, got {pid}")
    return SamplerConfig(
        pid=pid,
        include_threads=data.get("include_threads", d.include_threads),
        include_children=data.get("include_children", d.include_children),
        clamp_negative=data.get("clamp_negative", d.clamp_negative),
    )


def _load_monitor_config(data: dict) -> MonitorConfig:
    """Load monitor config from TOML data."""
    d = MonitorConfig()
    interval = data.get("interval", d.interval)
    max_threads_shown = data.get("max_threads_shown", d.max_threads_shown)
    if interval <= 0:
        raise ValueError(f"interval must be > 0, got {interval}")
    if max_threads_shown < 0:
        raise ValueError(f"max_threads_shown must be >= 0, got {max_threads_shown}")
    return MonitorConfig(
        interval=float(interval),
        max_threads_shown=max_threads_shown,
        clear_screen=data.get("clear_screen", d.clear_screen),
    )


def _load_logging_config(data: dict) -> LoggingConfig:
    """Load logging config from TOML data."""
    d = LoggingConfig()
    level = str(data.get("level", d.level)).upper()
    if level not in _LEVELS:
        raise ValueError(f"Invalid logging level: {level!r}. Must be one of {sorted(_LEVELS)}")
    return LoggingConfig(
        level=level,
        log_max_bytes=data.get("log_max_bytes", d.log_max_bytes),
        log_backup_count=data.get("log_backup_count", d.log_backup_count),
    )
