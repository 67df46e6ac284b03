"""
Configuration Management System for Saheli

Handles loading configuration from environment variables, config files,
and provides validation and runtime updates.
"""

import os
import re
import json
import yaml
import logging
from typing import Any, Dict, List, Optional, Callable
from pathlib import Path
from dataclasses import dataclass


@dataclass
class ConfigSource:
    """Configuration source definition"""
    name: str
    priority: int
    loader: Callable
    path: Optional[str] = None


class ConfigurationError(Exception):
    """Configuration-related errors"""
    pass


class ConfigurationManager:
    """
    Manages system configuration with support for multiple sources,
    validation, and runtime updates.
    """

    def __init__(self, config_dir: str = "config"):
        self.config_dir = Path(config_dir)
        self.config: Dict[str, Any] = {}
        self.watchers: Dict[str, List[Callable]] = {}
        self.sources: List[ConfigSource] = []
        self.logger = logging.getLogger(__name__)

        # Default configuration values
        self.defaults = {
            "app": {
                "name": "Saheli",
                "version": "1.0.0",
                "debug": False
            },
            "database": {
                "path": "data/saheli.db",
                "max_connections": 10
            },
            "geolocation": {
                "accuracy_threshold_m": 50.0,
                "watch_interval_seconds": 60.0,
                "timeout_ms": 10000,
                "maximum_age_ms": 0
            },
            "messaging": {
                "provider": "twilio",
                "api_base": "https://api.twilio.com/2010-04-01",
                "account_sid": "",
                "auth_token": "",
                "from_number": "",
                "timeout_seconds": 30
            },
            "alerts": {
                "country_code": "+91",
                "max_concurrency": 5,
                "maps_url": "https://www.google.com/maps?q={latitude},{longitude}",
                "notify_on_start": True
            },
            "logging": {
                "level": "INFO",
                "file": "logs/saheli.log",
                "max_size": "10MB",
                "backup_count": 5
            }
        }

        self._setup_sources()

    def _setup_sources(self):
        """Set up configuration sources in priority order"""
        # Environment variables (highest priority = lowest number)
        self.sources.append(ConfigSource(
            name="environment",
            priority=4,
            loader=self._load_from_env
        ))

        # Local config file
        local_config_path = str(self.config_dir / "config.yaml")
        self.sources.append(ConfigSource(
            name="local_config",
            priority=3,
            loader=lambda: self._load_from_file(local_config_path),
            path=local_config_path
        ))

        # Default config file
        default_config_path = str(self.config_dir / "default.yaml")
        self.sources.append(ConfigSource(
            name="default_config",
            priority=2,
            loader=lambda: self._load_from_file(default_config_path),
            path=default_config_path
        ))

        # Built-in defaults (lowest priority = highest number)
        self.sources.append(ConfigSource(
            name="defaults",
            priority=1,
            loader=lambda: self.defaults
        ))

    def load_config(self) -> None:
        """Load configuration from all sources"""
        self.logger.info("Loading configuration from all sources")

        # Lowest priority first so later sources override earlier ones
        merged_config = {}
        for source in sorted(self.sources, key=lambda x: x.priority):
            try:
                source_config = source.loader()
                if source_config:
                    merged_config = self._deep_merge(merged_config, source_config)
                    self.logger.debug(f"Loaded configuration from {source.name}")
            except Exception as e:
                self.logger.warning(f"Failed to load config from {source.name}: {e}")

        self.config = merged_config
        self._validate_config()
        self.logger.info("Configuration loaded successfully")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables"""
        config = {}

        # Map environment variables to config keys
        env_mappings = {
            "SAHELI_DEBUG": "app.debug",
            "SAHELI_LOG_LEVEL": "logging.level",
            "SAHELI_DB_PATH": "database.path",
            "SAHELI_TWILIO_ACCOUNT_SID": "messaging.account_sid",
            "SAHELI_TWILIO_AUTH_TOKEN": "messaging.auth_token",
            "SAHELI_TWILIO_PHONE_NUMBER": "messaging.from_number",
            "SAHELI_COUNTRY_CODE": "alerts.country_code",
            "SAHELI_ALERT_CONCURRENCY": "alerts.max_concurrency"
        }

        # Credentials and phone numbers stay strings even when numeric
        string_keys = {
            "messaging.account_sid",
            "messaging.auth_token",
            "messaging.from_number",
            "alerts.country_code"
        }

        for env_var, config_key in env_mappings.items():
            value = os.getenv(env_var)
            if value is None:
                continue

            if config_key not in string_keys:
                if value.lower() in ('true', 'false'):
                    value = value.lower() == 'true'
                elif value.isdigit():
                    value = int(value)

            self._set_nested_value(config, config_key, value)

        return config

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file"""
        path = Path(file_path)

        if not path.exists():
            return {}

        try:
            with open(path, 'r') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    return yaml.safe_load(f) or {}
                elif path.suffix.lower() == '.json':
                    return json.load(f)
                else:
                    self.logger.warning(f"Unsupported config file format: {path}")
                    return {}
        except Exception as e:
            self.logger.error(f"Error loading config file {path}: {e}")
            return {}

    def _deep_merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _set_nested_value(self, config: Dict, key_path: str, value: Any) -> None:
        """Set a nested configuration value using dot notation"""
        keys = key_path.split('.')
        current = config

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def _validate_config(self) -> None:
        """Validate configuration values"""
        errors = []

        # Validate required sections
        required_sections = ['app', 'database', 'geolocation', 'alerts']
        for section in required_sections:
            if section not in self.config:
                errors.append(f"Missing required configuration section: {section}")

        # Validate database path
        db_path = self.get('database.path')
        if db_path and db_path != ':memory:':
            db_dir = Path(db_path).parent
            if not db_dir.exists():
                try:
                    db_dir.mkdir(parents=True, exist_ok=True)
                except Exception as e:
                    errors.append(f"Cannot create database directory {db_dir}: {e}")

        # Validate log level
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        log_level = self.get('logging.level', 'INFO')
        if str(log_level).upper() not in valid_levels:
            errors.append(f"Invalid log level: {log_level}")

        for area, level in (self.get('logging.services') or {}).items():
            if str(level).upper() not in valid_levels:
                errors.append(f"Invalid log level for {area}: {level}")

        # Validate geolocation tuning
        threshold = self.get('geolocation.accuracy_threshold_m')
        if not isinstance(threshold, (int, float)) or threshold <= 0:
            errors.append(f"Invalid accuracy threshold: {threshold}")

        interval = self.get('geolocation.watch_interval_seconds')
        if not isinstance(interval, (int, float)) or interval < 0:
            errors.append(f"Invalid watch interval: {interval}")

        # Validate alert fan-out
        country_code = self.get('alerts.country_code', '')
        if not re.fullmatch(r'\+\d{1,3}', str(country_code)):
            errors.append(f"Invalid country code: {country_code}")

        concurrency = self.get('alerts.max_concurrency')
        if not isinstance(concurrency, int) or concurrency < 1:
            errors.append(f"Invalid alert concurrency: {concurrency}")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation"""
        keys = key.split('.')
        current = self.config

        try:
            for k in keys:
                current = current[k]
            return current
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation"""
        self._set_nested_value(self.config, key, value)

        # Notify watchers
        if key in self.watchers:
            for callback in self.watchers[key]:
                try:
                    callback(key, value)
                except Exception as e:
                    self.logger.error(f"Error in config watcher for {key}: {e}")

    def watch(self, key: str, callback: Callable[[str, Any], None]) -> None:
        """Watch for configuration changes"""
        if key not in self.watchers:
            self.watchers[key] = []
        self.watchers[key].append(callback)

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get entire configuration section"""
        return self.get(section, {})

    def is_messaging_configured(self) -> bool:
        """Check whether messaging credentials are present"""
        messaging = self.get_section('messaging')
        return all(messaging.get(key) for key in ('account_sid', 'auth_token', 'from_number'))

    def export_config(self, file_path: str) -> None:
        """Export current configuration to file"""
        path = Path(file_path)

        try:
            with open(path, 'w') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    yaml.dump(self.config, f, default_flow_style=False, indent=2)
                elif path.suffix.lower() == '.json':
                    json.dump(self.config, f, indent=2)
                else:
                    raise ValueError(f"Unsupported file format: {path.suffix}")

            self.logger.info(f"Configuration exported to {path}")
        except Exception as e:
            self.logger.error(f"Failed to export configuration: {e}")
            raise ConfigurationError(f"Export failed: {e}")
