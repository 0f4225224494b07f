"""
Centralized logging configuration for the dedup_chunking package.

This module provides:
- User-facing status messages (chunking progress, summaries)
- Developer debug logs for the chunking core and stream drivers
- Performance and metrics records (throughput, chunk counts, dedup ratios)
- Collection of recent logs into a zip file for bug reports
"""

import json
import logging
import logging.handlers
import platform
import sys
import tempfile
import zipfile
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import psutil


class LogLevel(Enum):
    """Logging levels with user-friendly names."""
    SILENT = "silent"      # Only critical errors
    MINIMAL = "minimal"    # Bare status lines
    NORMAL = "normal"      # Standard logging for users
    VERBOSE = "verbose"    # Adds performance and metrics lines
    DEBUG = "debug"        # Per-call detail from the chunking core
    TRACE = "trace"        # Maximum verbosity for development


_PYTHON_LEVELS = {
    LogLevel.SILENT: logging.CRITICAL,
    LogLevel.MINIMAL: logging.INFO,
    LogLevel.NORMAL: logging.INFO,
    LogLevel.VERBOSE: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.TRACE: logging.DEBUG,
}

_DETAILED_LEVELS = (LogLevel.VERBOSE, LogLevel.DEBUG, LogLevel.TRACE)
_DEBUG_LEVELS = (LogLevel.DEBUG, LogLevel.TRACE)

# LogRecord attributes that are not user-supplied extras.
_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


@dataclass
class LogConfig:
    """Configuration for logging behavior."""
    level: LogLevel = LogLevel.NORMAL
    console_output: bool = True
    file_output: bool = False
    log_file: Optional[Path] = None
    collect_performance: bool = True
    collect_metrics: bool = True
    format_json: bool = False
    include_module_names: bool = True
    max_file_size: str = "10MB"
    backup_count: int = 3

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        result = asdict(self)
        result['level'] = self.level.value
        if self.log_file:
            result['log_file'] = str(self.log_file)
        return result


def parse_size(size: Union[str, int]) -> int:
    """Parse a size such as '10MB', '512K' or 4096 into bytes."""
    if isinstance(size, int):
        return size
    text = size.strip().upper()
    for suffix, multiplier in (("GB", 1024 ** 3), ("MB", 1024 ** 2), ("KB", 1024),
                               ("G", 1024 ** 3), ("M", 1024 ** 2), ("K", 1024), ("B", 1)):
        if text.endswith(suffix):
            return int(float(text[:-len(suffix)]) * multiplier)
    return int(text)


class DedupLogger:
    """Process-wide logging state for the package."""

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._initialized = True
        self.config = LogConfig()
        self.log_records: List[Dict[str, Any]] = []
        self.performance_logs: List[Dict[str, Any]] = []
        self.session_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        self._handlers: List[logging.Handler] = []
        self._temp_dir: Optional[Path] = None

        self._configure_logging()

    def configure(self, config: Optional[LogConfig] = None, **kwargs) -> None:
        """
        Configure logging behavior.

        Args:
            config: LogConfig object with settings
            **kwargs: Individual config fields overriding ``config``
        """
        settings = asdict(config or self.config)
        for key, value in kwargs.items():
            if key not in settings:
                raise ValueError(f"Unknown logging option: {key}")
            if key == 'level' and isinstance(value, str):
                value = LogLevel(value.lower())
            elif key == 'log_file' and value:
                value = Path(value)
            settings[key] = value

        self.config = LogConfig(**settings)
        self._configure_logging()

    def _configure_logging(self) -> None:
        """Install handlers on the root logger, replacing the ones we added before."""
        root_logger = logging.getLogger()
        for handler in self._handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self._handlers = []

        level = _PYTHON_LEVELS[self.config.level]
        root_logger.setLevel(level)
        formatter = JsonFormatter() if self.config.format_json else self._create_text_formatter()

        if self.config.console_output:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            console_handler.setLevel(level)
            self._handlers.append(console_handler)

        if self.config.file_output and self.config.log_file:
            self.config.log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                self.config.log_file,
                maxBytes=parse_size(self.config.max_file_size),
                backupCount=self.config.backup_count,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            file_handler.setLevel(level)
            self._handlers.append(file_handler)

        if self.config.level in _DEBUG_LEVELS:
            collection_handler = LogCollectionHandler(self)
            collection_handler.setLevel(logging.DEBUG)
            self._handlers.append(collection_handler)

        for handler in self._handlers:
            root_logger.addHandler(handler)

    def _create_text_formatter(self) -> logging.Formatter:
        if self.config.level == LogLevel.MINIMAL:
            fmt = '%(message)s'
        elif self.config.include_module_names and self.config.level in _DEBUG_LEVELS:
            fmt = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        elif self.config.include_module_names:
            fmt = '%(asctime)s - %(levelname)s - %(message)s'
        else:
            fmt = '%(asctime)s - %(message)s'
        return logging.Formatter(fmt, datefmt='%Y-%m-%d %H:%M:%S')

    def get_logger(self, name: str) -> logging.Logger:
        return logging.getLogger(name)

    def user_info(self, message: str, **kwargs) -> None:
        """Log user-facing informational message."""
        if self.config.level != LogLevel.SILENT:
            logging.getLogger('dedup_chunking.user').info(
                f"📝 {message}", extra={'user_message': True, **kwargs})

    def user_success(self, message: str, **kwargs) -> None:
        """Log user-facing success message."""
        if self.config.level != LogLevel.SILENT:
            logging.getLogger('dedup_chunking.user').info(
                f"✅ {message}", extra={'user_message': True, **kwargs})

    def user_warning(self, message: str, **kwargs) -> None:
        logging.getLogger('dedup_chunking.user').warning(
            f"⚠️  {message}", extra={'user_message': True, **kwargs})

    def user_error(self, message: str, **kwargs) -> None:
        logging.getLogger('dedup_chunking.user').error(
            f"❌ {message}", extra={'user_message': True, **kwargs})

    def debug_operation(self, operation: str, details: Dict[str, Any], **kwargs) -> None:
        """Log one operation with its parameters, in debug levels only."""
        if self.config.level in _DEBUG_LEVELS:
            logging.getLogger('dedup_chunking.debug').debug(
                f"🔧 {operation}", extra={'operation': operation, 'details': details, **kwargs})

    def performance_log(self, operation: str, duration: float, **kwargs) -> None:
        """Record how long an operation took (and throughput, when given)."""
        if not self.config.collect_performance:
            return
        perf_data = {
            'timestamp': datetime.now().isoformat(),
            'operation': operation,
            'duration_seconds': duration,
            'session_id': self.session_id,
            **kwargs
        }
        self.performance_logs.append(perf_data)
        if self.config.level in _DETAILED_LEVELS:
            logging.getLogger('dedup_chunking.performance').info(
                f"⏱️  {operation}: {duration:.3f}s", extra=perf_data)

    def metrics_log(self, metrics: Dict[str, Any], **kwargs) -> None:
        """Log chunk-level metrics such as counts and dedup ratio."""
        if self.config.collect_metrics and self.config.level in _DETAILED_LEVELS:
            logging.getLogger('dedup_chunking.metrics').info(
                "📊 Metrics collected",
                extra={'timestamp': datetime.now().isoformat(), 'session_id': self.session_id,
                       'metrics': metrics, **kwargs})

    def enable_debug_mode(self, log_file: Optional[Path] = None) -> Path:
        """
        Switch to debug logging, optionally mirrored to ``log_file``.

        Returns:
            Directory where debug archives will be written
        """
        self.configure(LogConfig(
            level=LogLevel.DEBUG,
            console_output=True,
            file_output=bool(log_file),
            log_file=log_file,
            collect_performance=True,
            collect_metrics=True,
        ))
        self.user_info(f"Debug mode enabled, session {self.session_id}")
        if log_file:
            self.user_info(f"Debug logs will be written to: {log_file}")
        return self._debug_dir()

    def _debug_dir(self) -> Path:
        if not self._temp_dir:
            self._temp_dir = Path(tempfile.mkdtemp(prefix="dedup_debug_"))
        return self._temp_dir

    def collect_debug_info(self) -> Path:
        """
        Write system info, configuration, recent logs and performance data
        into a zip file for bug reports.

        Returns:
            Path to the created zip file
        """
        zip_path = self._debug_dir() / f"dedup_debug_{self.session_id}.zip"
        with zipfile.ZipFile(zip_path, 'w', zipfile.ZIP_DEFLATED) as zipf:
            zipf.writestr("system_info.json", json.dumps(self._collect_system_info(), indent=2))
            zipf.writestr("config.json", json.dumps(self.config.to_dict(), indent=2))
            if self.log_records:
                zipf.writestr("recent_logs.jsonl", "".join(
                    json.dumps(record, default=str) + "\n" for record in self.log_records[-1000:]))
            if self.performance_logs:
                zipf.writestr("performance_logs.json",
                              json.dumps(self.performance_logs, indent=2, default=str))
        return zip_path

    def _collect_system_info(self) -> Dict[str, Any]:
        cpu_freq = psutil.cpu_freq()
        return {
            'platform': platform.platform(),
            'python_version': sys.version,
            'dedup_chunking_version': getattr(sys.modules.get('dedup_chunking'), '__version__', 'unknown'),
            'timestamp': datetime.now().isoformat(),
            'session_id': self.session_id,
            'memory': psutil.virtual_memory()._asdict(),
            'cpu': {
                'cpu_count': psutil.cpu_count(),
                'cpu_freq': cpu_freq._asdict() if cpu_freq else None,
            },
        }


class LogCollectionHandler(logging.Handler):
    """Keeps recent log records in memory for debug archives."""

    def __init__(self, dedup_logger: DedupLogger):
        super().__init__()
        self.dedup_logger = dedup_logger

    def emit(self, record: logging.LogRecord) -> None:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'module': record.name,
            'message': record.getMessage(),
            'filename': record.filename,
            'line_number': record.lineno,
            'function': record.funcName
        }
        extra_fields = {k: v for k, v in record.__dict__.items() if k not in _RECORD_FIELDS}
        if extra_fields:
            log_data['extra'] = extra_fields

        records = self.dedup_logger.log_records
        records.append(log_data)
        if len(records) > 2000:
            del records[:-1000]


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging output."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'module': record.name,
            'message': record.getMessage(),
            'filename': record.filename,
            'line_number': record.lineno,
            'function': record.funcName
        }
        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)
        log_data.update({k: v for k, v in record.__dict__.items() if k not in _RECORD_FIELDS})
        return json.dumps(log_data, default=str)


# Global logger instance
_logger = DedupLogger()


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger for the package (``dedup_chunking`` when no name is given)."""
    return _logger.get_logger(name or 'dedup_chunking')


def configure_logging(level: Union[str, LogLevel] = LogLevel.NORMAL, **kwargs) -> None:
    """
    Configure package-wide logging.

    Args:
        level: Logging level
        **kwargs: Additional LogConfig fields
    """
    if isinstance(level, str):
        level = LogLevel(level.lower())
    _logger.configure(level=level, **kwargs)


def current_config() -> LogConfig:
    return _logger.config


def user_info(message: str, **kwargs) -> None:
    _logger.user_info(message, **kwargs)


def user_success(message: str, **kwargs) -> None:
    _logger.user_success(message, **kwargs)


def user_warning(message: str, **kwargs) -> None:
    _logger.user_warning(message, **kwargs)


def user_error(message: str, **kwargs) -> None:
    _logger.user_error(message, **kwargs)


def debug_operation(operation: str, details: Dict[str, Any], **kwargs) -> None:
    _logger.debug_operation(operation, details, **kwargs)


def performance_log(operation: str, duration: float, **kwargs) -> None:
    _logger.performance_log(operation, duration, **kwargs)


def metrics_log(metrics: Dict[str, Any], **kwargs) -> None:
    _logger.metrics_log(metrics, **kwargs)


def enable_debug_mode(log_file: Optional[Union[str, Path]] = None) -> Path:
    """Enable debug logging; see ``DedupLogger.enable_debug_mode``."""
    if isinstance(log_file, str):
        log_file = Path(log_file)
    return _logger.enable_debug_mode(log_file)


def collect_debug_info() -> Path:
    """Collect debug information for bug reporting; returns the zip path."""
    return _logger.collect_debug_info()
