"""
Logging configuration for the Ruuvi REST publisher.
Provides console, rotating file and syslog handlers plus publish performance metrics.
"""

import logging
import logging.handlers
import sys
import time
from collections import deque
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Deque, Dict, Optional
import colorlog
from datetime import datetime, timezone


COMPONENT_LOGGERS = {
    'ruuvi.ble': ("ble_scanner.log", '%(asctime)s [%(levelname)s] BLE: %(message)s'),
    'ruuvi.rest': ("publisher.log", '%(asctime)s [%(levelname)s] REST: %(message)s'),
    'ruuvi.devices': ("devices.log", '%(asctime)s [%(levelname)s] DEVICES: %(message)s'),
    'ruuvi.performance': ("performance.log", '%(asctime)s PERF: %(message)s'),
}

# Entries retained per metric; totals are counted separately
RECENT_METRICS_LIMIT = 500


class ProductionLogger:
    """
    Logging setup for long-running deployment with multiple handlers.
    """

    def __init__(self,
                 app_name: str = "ruuvi_rest",
                 log_dir: str = "./logs",
                 log_level: str = "INFO",
                 max_file_size: int = 10 * 1024 * 1024,  # 10MB
                 backup_count: int = 5,
                 enable_console: bool = True,
                 enable_syslog: bool = False):

        self.app_name = app_name
        self.log_dir = Path(log_dir)
        self.log_level = getattr(logging, log_level.upper())
        self.max_file_size = max_file_size
        self.backup_count = backup_count
        self.enable_console = enable_console
        self.enable_syslog = enable_syslog

        self.log_dir.mkdir(parents=True, exist_ok=True)

        self._setup_root_logger()
        self._setup_component_loggers()

    def _setup_root_logger(self):
        """Configure root logger with multiple handlers."""
        root_logger = logging.getLogger()
        root_logger.setLevel(self.log_level)
        root_logger.handlers.clear()

        if self.enable_console:
            console_handler = colorlog.StreamHandler(sys.stdout)
            console_handler.setLevel(self.log_level)
            console_formatter = colorlog.ColoredFormatter(
                '%(log_color)s%(asctime)s [%(levelname)8s] %(name)s: %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S',
                log_colors={
                    'DEBUG': 'cyan',
                    'INFO': 'green',
                    'WARNING': 'yellow',
                    'ERROR': 'red',
                    'CRITICAL': 'red,bg_white',
                }
            )
            console_handler.setFormatter(console_formatter)
            root_logger.addHandler(console_handler)

        file_handler = logging.handlers.RotatingFileHandler(
            self.log_dir / f"{self.app_name}.log",
            maxBytes=self.max_file_size,
            backupCount=self.backup_count
        )
        file_handler.setLevel(self.log_level)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)8s] %(name)s [%(process)d:%(thread)d] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        root_logger.addHandler(file_handler)

        # Syslog handler for systemd integration
        if self.enable_syslog:
            try:
                syslog_handler = logging.handlers.SysLogHandler(address='/dev/log')
                syslog_handler.setLevel(logging.WARNING)
                syslog_handler.setFormatter(logging.Formatter(
                    f'{self.app_name}[%(process)d]: %(levelname)s - %(message)s'
                ))
                root_logger.addHandler(syslog_handler)
            except OSError as e:
                root_logger.warning(f"Could not setup syslog handler: {e}")

    def _setup_component_loggers(self):
        """Give every component logger its own rotating file."""
        for name, (file_name, fmt) in COMPONENT_LOGGERS.items():
            component_logger = logging.getLogger(name)
            for handler in list(component_logger.handlers):
                component_logger.removeHandler(handler)
                handler.close()

            handler = logging.handlers.RotatingFileHandler(
                self.log_dir / file_name,
                maxBytes=self.max_file_size,
                backupCount=self.backup_count
            )
            handler.setFormatter(logging.Formatter(fmt))
            component_logger.addHandler(handler)


class PerformanceMonitor:
    """
    Publish performance metrics for production debugging.

    Totals are kept as running counters; only the most recent entries of each
    metric are retained for inspection.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, max_recent: int = RECENT_METRICS_LIMIT):
        self.logger = logger or logging.getLogger('ruuvi.performance')
        self.max_recent = max_recent
        self.metrics: Dict[str, Deque[dict]] = {
            'publish_times': deque(maxlen=max_recent),
        }
        self.start_time = datetime.now(timezone.utc)

        self._publishes = 0
        self._successful = 0
        self._successful_duration = 0.0
        self._records_published = 0

    def log_publish(self, duration: float, records: int, success: bool):
        """Log a single batch publish."""
        self._publishes += 1
        if success:
            self._successful += 1
            self._successful_duration += duration
            self._records_published += records

        self.metrics['publish_times'].append({
            'duration': duration,
            'records': records,
            'success': success,
            'timestamp': datetime.now(timezone.utc)
        })

        self.logger.info(
            f"PUBLISH duration={duration:.3f}s records={records} success={success}"
        )

    def record_metric(self, metric_name: str, value: float):
        """Record a metric value."""
        if metric_name not in self.metrics:
            self.metrics[metric_name] = deque(maxlen=self.max_recent)
        self.metrics[metric_name].append({
            'value': value,
            'timestamp': datetime.now(timezone.utc)
        })

        self.logger.debug(f"METRIC {metric_name}={value}")

    @contextmanager
    def measure_time(self, operation_name: str):
        """Context manager for measuring operation time."""
        start_time = time.monotonic()
        try:
            yield
        finally:
            duration = time.monotonic() - start_time
            self.record_metric(f"{operation_name}_duration", duration)

    def get_performance_summary(self) -> Dict[str, Any]:
        """Generate performance summary for monitoring."""
        summary = {
            'uptime_seconds': (datetime.now(timezone.utc) - self.start_time).total_seconds(),
            'publishes': {
                'total': self._publishes,
                'successful': self._successful,
                'avg_duration': 0.0,
                'total_records_published': self._records_published,
            },
        }

        if self._successful:
            summary['publishes']['avg_duration'] = self._successful_duration / self._successful

        return summary

    def get_metrics(self) -> Dict[str, list]:
        """Get the retained entries of every metric."""
        return {name: list(entries) for name, entries in self.metrics.items()}


def setup_logging(config) -> ProductionLogger:
    """
    Setup logging for the Ruuvi REST publisher using configuration.

    Args:
        config: Configuration instance

    Returns:
        ProductionLogger instance
    """
    return ProductionLogger(
        log_level=config.log_level,
        log_dir=str(config.log_dir),
        max_file_size=config.log_max_file_size,
        backup_count=config.log_backup_count,
        enable_console=config.log_enable_console,
        enable_syslog=config.log_enable_syslog
    )
