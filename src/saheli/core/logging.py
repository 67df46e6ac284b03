"""
Logging Setup for Saheli

Everything logs through the standard library under the ``saheli`` namespace:

- ``saheli.core.*`` and ``saheli.application`` for configuration, storage and
  startup
- ``saheli.services.<area>.*`` for the feature services, where area is one of
  alerts, contacts, location or sharing

The ``logging.services`` section sets a level per area, for example
``{alerts: DEBUG, location: WARNING}``. Alert fan-out additionally emits
structured JSON events through structlog on the same area loggers, so the
area level applies to them too.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog


ROOT_NAMESPACE = 'saheli'

FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
CONSOLE_FORMAT = '%(asctime)s %(levelname)-8s %(name)s: %(message)s'

# aiohttp logs every request at INFO
QUIET_LOGGERS = ('asyncio', 'aiohttp.access', 'aiohttp.client')

_SIZE_UNITS = {'KB': 1024, 'MB': 1024 ** 2, 'GB': 1024 ** 3}


def parse_size(size: Any) -> int:
    """Parse a size like '10MB' or 2048 into bytes"""
    text = str(size).strip().upper()
    for suffix, multiplier in _SIZE_UNITS.items():
        if text.endswith(suffix):
            return int(float(text[:-len(suffix)]) * multiplier)
    return int(text)


def parse_level(level: Any) -> int:
    """Resolve a level name such as 'warning' to its numeric value"""
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def service_logger_name(area: str) -> str:
    """
    Logger name for a service area

    Names already inside the saheli namespace are used as given, 'core' maps
    to the core package and anything else is a service area.
    """
    if area == ROOT_NAMESPACE or area.startswith(f'{ROOT_NAMESPACE}.'):
        return area
    if area == 'core':
        return f'{ROOT_NAMESPACE}.core'
    return f'{ROOT_NAMESPACE}.services.{area}'


class SaheliLogger:
    """Installs the handlers and levels described by the logging config"""

    def __init__(self, config: Dict):
        self.log_config = config.get('logging', {}) or {}
        self.handlers: List[logging.Handler] = []
        self.service_levels: Dict[str, int] = {}

        self.level = parse_level(self.log_config.get('level', 'INFO'))
        self.console_level = parse_level(self.log_config.get('console_level', 'INFO'))
        levels = {
            service_logger_name(area): parse_level(level)
            for area, level in (self.log_config.get('services') or {}).items()
        }

        self._configure_structlog()
        self._install_handlers()
        self._apply_service_levels(levels)
        self._quiet_third_party()

    def _configure_structlog(self):
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="ISO", utc=True),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def _install_handlers(self):
        root_logger = logging.getLogger()
        root_logger.setLevel(self.level)

        log_file = self.log_config.get('file')
        if log_file:
            self.handlers.append(self._file_handler(log_file))

        if self.log_config.get('console', True):
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
            handler.setLevel(self.console_level)
            self.handlers.append(handler)

        for handler in self.handlers:
            root_logger.addHandler(handler)

    def _file_handler(self, log_file: str) -> logging.Handler:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            path,
            maxBytes=parse_size(self.log_config.get('max_size', '10MB')),
            backupCount=int(self.log_config.get('backup_count', 5)),
            encoding='utf-8'
        )
        handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        # Area loggers may be more verbose than the root level
        handler.setLevel(logging.DEBUG)
        return handler

    def _apply_service_levels(self, levels: Dict[str, int]):
        for name, level in levels.items():
            logging.getLogger(name).setLevel(level)
        self.service_levels.update(levels)

    def _quiet_third_party(self):
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    def close(self):
        """Detach and close the handlers this setup installed"""
        root_logger = logging.getLogger()
        for handler in self.handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self.handlers.clear()

        for name in self.service_levels:
            logging.getLogger(name).setLevel(logging.NOTSET)
        self.service_levels.clear()


_logger_instance: Optional[SaheliLogger] = None


def initialize_logging(config: Dict) -> SaheliLogger:
    """Install logging for the process, replacing any earlier setup"""
    global _logger_instance
    if _logger_instance is not None:
        _logger_instance.close()
    _logger_instance = SaheliLogger(config)
    return _logger_instance


def shutdown_logging():
    """Remove the handlers installed by initialize_logging"""
    global _logger_instance
    if _logger_instance is not None:
        _logger_instance.close()
        _logger_instance = None


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(service_logger_name(name))


def get_structured_logger(area: str) -> structlog.stdlib.BoundLogger:
    """Structured event logger for a service area"""
    return structlog.get_logger(service_logger_name(area))
