# src/llmcontext/logging_config.py
"""
Application-level logging setup for services embedding llmcontext.

The library modules only ever call ``logging.getLogger(__name__)``; nothing
here runs on import.  An application that wants llmcontext's diagnostics
(pipeline timings, truncation decisions, dropped tool messages) calls
``configure_logging()`` once at startup.

Configuration comes from, in order of preference:

- a dict passed to ``configure_logging(config=...)``;
- the ``[logging]`` table of a TOML file (``config_file_path=...``);
- ``DEFAULT_LOGGING_CONFIG``.

Key concepts:

    **Display filter**: with ``console_enabled=False`` (the default) the
    console handler exists but only lets through records logged with
    ``extra={"display": True}`` (see ``log_display``).  Everything else goes
    to the log file only.

    **File modes**: ``file_mode="per_run"`` writes a new timestamped file per
    process; ``file_mode="single"`` appends to one file rotated by size.

Usage:
    from llmcontext.logging_config import configure_logging, log_display

    configure_logging(app_name="chat-gateway", config={"console_enabled": True})

    logger = logging.getLogger("chat_gateway.startup")
    log_display(logger, logging.INFO, "Context pipeline ready (%d stages)", count)
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_LOGGING_CONFIG: dict[str, Any] = {
    "console_enabled": False,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(message)s",
    "file_enabled": True,
    "file_level": "DEBUG",
    "file_directory": "~/.local/share/llmcontext/logs",
    "file_mode": "per_run",
    "file_name_pattern": "{app}_{timestamp:%Y%m%d_%H%M%S}.log",
    "file_single_name": "{app}.log",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-40s - %(message)s",
    "rotation_max_bytes": 10 * 1024 * 1024,  # 10 MB
    "rotation_backup_count": 5,
    "display_min_level": "INFO",
    "components": {
        "llmcontext": "INFO",
        "llmcontext.context.pipeline": "INFO",
        "tiktoken": "WARNING",
        "asyncio": "WARNING",
    },
}


def _resolve_level(value: str | int, default: int) -> int:
    """Map a level name or number to a logging level, or *default*."""
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper())
    return level if isinstance(level, int) else default


# ---------------------------------------------------------------------------
# DisplayFilter
# ---------------------------------------------------------------------------


class DisplayFilter(logging.Filter):
    """Gate for the console handler.

    Verbose mode (``console_globally_enabled=True``): every record passes and
    the handler level decides.

    Quiet mode: only records carrying ``display=True`` pass, and only at or
    above ``display_min_level``.
    """

    def __init__(
        self,
        console_globally_enabled: bool = False,
        display_min_level: int = logging.INFO,
    ) -> None:
        super().__init__()
        self.console_globally_enabled = console_globally_enabled
        self.display_min_level = display_min_level

    def filter(self, record: logging.LogRecord) -> bool:
        if self.console_globally_enabled:
            return True
        if getattr(record, "display", False):
            return record.levelno >= self.display_min_level
        return False


# ---------------------------------------------------------------------------
# UnifiedLoggingManager
# ---------------------------------------------------------------------------


class UnifiedLoggingManager:
    """
    Process-wide logging configuration.

    A singleton so repeated ``configure_logging()`` calls (e.g. from several
    entry points) only install handlers once.
    """

    _instance: Optional["UnifiedLoggingManager"] = None
    _configured: bool = False
    _log_file_path: Path | None = None
    _console_handler: logging.Handler | None = None
    _file_handler: logging.Handler | None = None
    _display_filter: DisplayFilter | None = None

    def __new__(cls) -> "UnifiedLoggingManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @classmethod
    def get_instance(cls) -> "UnifiedLoggingManager":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def is_configured(cls) -> bool:
        return cls._configured

    @classmethod
    def get_log_file_path(cls) -> Path | None:
        return cls._log_file_path

    def configure(
        self,
        app_name: str = "llmcontext",
        config: dict[str, Any] | None = None,
        config_file_path: str | Path | None = None,
        force_reconfigure: bool = False,
    ) -> Path | None:
        """
        Install console and file handlers on the root logger.

        Args:
            app_name: Used in log file names.
            config: Logging options; merged over ``DEFAULT_LOGGING_CONFIG``.
            config_file_path: TOML file whose ``[logging]`` table is used when
                ``config`` is not given.
            force_reconfigure: Replace handlers even if already configured.

        Returns:
            The log file path, or ``None`` when file logging is off or failed.
        """
        if self._configured and not force_reconfigure:
            return self._log_file_path

        log_config = self._load_config(config, config_file_path)

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()
        root_logger.setLevel(logging.DEBUG)

        console_globally_enabled = bool(log_config.get("console_enabled", False))
        self._display_filter = DisplayFilter(
            console_globally_enabled=console_globally_enabled,
            display_min_level=_resolve_level(log_config.get("display_min_level", "INFO"), logging.INFO),
        )

        self._console_handler = self._create_console_handler(log_config)
        if not console_globally_enabled:
            # The filter alone decides what reaches the console.
            self._console_handler.setLevel(logging.DEBUG)
        self._console_handler.addFilter(self._display_filter)
        root_logger.addHandler(self._console_handler)

        self._file_handler, self._log_file_path = None, None
        if log_config.get("file_enabled", True):
            self._file_handler, self._log_file_path = self._create_file_handler(log_config, app_name)
            if self._file_handler:
                root_logger.addHandler(self._file_handler)

        components = log_config.get("components", DEFAULT_LOGGING_CONFIG["components"])
        for component_name, level_str in components.items():
            level = logging.getLevelName(str(level_str).upper())
            if isinstance(level, int):
                logging.getLogger(component_name).setLevel(level)

        UnifiedLoggingManager._configured = True
        UnifiedLoggingManager._log_file_path = self._log_file_path

        if self._log_file_path:
            logging.getLogger(__name__).debug(f"Logging configured. Log file: {self._log_file_path}")

        return self._log_file_path

    def _load_config(
        self, config: dict[str, Any] | None, config_file_path: str | Path | None
    ) -> dict[str, Any]:
        if config is not None:
            return {**DEFAULT_LOGGING_CONFIG, **config}

        if config_file_path is not None:
            try:
                with open(config_file_path, "rb") as f:
                    logging_section = tomllib.load(f).get("logging", {})
            except (OSError, tomllib.TOMLDecodeError) as e:
                sys.stderr.write(f"Warning: Cannot read logging config from {config_file_path}: {e}\n")
            else:
                if logging_section:
                    return {**DEFAULT_LOGGING_CONFIG, **logging_section}

        return DEFAULT_LOGGING_CONFIG.copy()

    def _create_console_handler(self, config: dict[str, Any]) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(_resolve_level(config.get("console_level", "WARNING"), logging.WARNING))
        handler.setFormatter(
            logging.Formatter(config.get("console_format", DEFAULT_LOGGING_CONFIG["console_format"]))
        )
        return handler

    def _create_file_handler(
        self, config: dict[str, Any], app_name: str
    ) -> tuple[logging.Handler | None, Path | None]:
        """
        Build the file handler for ``file_mode`` ``"per_run"`` or ``"single"``.

        Directory or file creation problems are reported on stderr and
        disable file logging rather than failing the application.
        """
        log_dir = Path(os.path.expanduser(config.get("file_directory", DEFAULT_LOGGING_CONFIG["file_directory"])))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
            return None, None

        handler: logging.Handler
        if config.get("file_mode", "per_run") == "single":
            try:
                filename = config.get("file_single_name", "{app}.log").format(app=app_name)
            except (KeyError, ValueError):
                filename = f"{app_name}.log"
            log_file_path = log_dir / filename
            try:
                handler = RotatingFileHandler(
                    log_file_path,
                    maxBytes=config.get("rotation_max_bytes", DEFAULT_LOGGING_CONFIG["rotation_max_bytes"]),
                    backupCount=config.get("rotation_backup_count", DEFAULT_LOGGING_CONFIG["rotation_backup_count"]),
                    encoding="utf-8",
                )
            except OSError as e:
                sys.stderr.write(f"Warning: Cannot create log file {log_file_path}: {e}\n")
                return None, None
        else:
            timestamp = datetime.now()
            pattern = config.get("file_name_pattern", DEFAULT_LOGGING_CONFIG["file_name_pattern"])
            try:
                filename = pattern.format(app=app_name, timestamp=timestamp)
            except (KeyError, ValueError):
                filename = f"{app_name}_{timestamp.strftime('%Y%m%d_%H%M%S')}.log"
            log_file_path = log_dir / filename
            try:
                handler = logging.FileHandler(log_file_path, encoding="utf-8")
            except OSError as e:
                sys.stderr.write(f"Warning: Cannot create log file {log_file_path}: {e}\n")
                return None, None

        handler.setLevel(_resolve_level(config.get("file_level", "DEBUG"), logging.DEBUG))
        handler.setFormatter(logging.Formatter(config.get("file_format", DEFAULT_LOGGING_CONFIG["file_format"])))
        return handler, log_file_path

    # -----------------------------------------------------------------------
    # Runtime adjustments
    # -----------------------------------------------------------------------

    def set_console_level(self, level: str | int) -> None:
        if self._console_handler is not None:
            self._console_handler.setLevel(_resolve_level(level, self._console_handler.level))

    def set_file_level(self, level: str | int) -> None:
        if self._file_handler is not None:
            self._file_handler.setLevel(_resolve_level(level, self._file_handler.level))

    def set_component_level(self, component: str, level: str | int) -> None:
        component_logger = logging.getLogger(component)
        component_logger.setLevel(_resolve_level(level, component_logger.level))

    def disable_console(self) -> None:
        """Remove the console handler; even ``display=True`` records stop showing."""
        if self._console_handler is not None:
            logging.getLogger().removeHandler(self._console_handler)
            self._console_handler = None
            self._display_filter = None

    def enable_console(self, level: str = "WARNING") -> None:
        """Install a console handler that passes every record at or above *level*."""
        if self._display_filter is not None and self._display_filter.console_globally_enabled:
            return

        if self._console_handler is not None:
            logging.getLogger().removeHandler(self._console_handler)

        self._console_handler = self._create_console_handler({"console_level": level})
        self._display_filter = DisplayFilter(console_globally_enabled=True, display_min_level=logging.DEBUG)
        self._console_handler.addFilter(self._display_filter)
        logging.getLogger().addHandler(self._console_handler)


# ---------------------------------------------------------------------------
# Module-level API
# ---------------------------------------------------------------------------


def configure_logging(
    app_name: str = "llmcontext",
    config: dict[str, Any] | None = None,
    config_file_path: str | Path | None = None,
    force_reconfigure: bool = False,
) -> Path | None:
    """
    Configure logging once for the whole process.

    Example:
        configure_logging(
            app_name="chat-gateway",
            config={"console_enabled": True, "console_level": "DEBUG", "file_enabled": False},
        )
    """
    return UnifiedLoggingManager.get_instance().configure(
        app_name=app_name,
        config=config,
        config_file_path=config_file_path,
        force_reconfigure=force_reconfigure,
    )


def log_display(
    logger: logging.Logger,
    level: int,
    msg: str,
    *args: Any,
    **kwargs: Any,
) -> None:
    """Log *msg* with ``display=True`` so it reaches the console in quiet mode.

    ``display_min_level`` still applies.  An ``extra`` dict passed by the
    caller is kept and extended.
    """
    extra = dict(kwargs.pop("extra", None) or {})
    extra["display"] = True
    kwargs["extra"] = extra
    logger.log(level, msg, *args, **kwargs)


def get_log_file_path() -> Path | None:
    return UnifiedLoggingManager.get_log_file_path()


def set_console_level(level: str | int) -> None:
    UnifiedLoggingManager.get_instance().set_console_level(level)


def set_file_level(level: str | int) -> None:
    UnifiedLoggingManager.get_instance().set_file_level(level)


def set_component_level(component: str, level: str | int) -> None:
    UnifiedLoggingManager.get_instance().set_component_level(component, level)


def disable_console_logging() -> None:
    UnifiedLoggingManager.get_instance().disable_console()


def enable_console_logging(level: str = "WARNING") -> None:
    UnifiedLoggingManager.get_instance().enable_console(level)
