"""
Configuration Management for kala

Rate, report and path defaults for kala, read from built-in values,
config/*.yaml or *.json files and KALA_* environment variables.
"""

import os
import json
import logging
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Union, List
from dataclasses import dataclass, asdict, fields

from .exceptions import ConfigurationError


logger = logging.getLogger(__name__)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('true', '1', 'yes')


@dataclass
class PathConfig:
    """Where CDM tables and covariate data are read and results written."""
    data_dir: Path = Path("data")
    config_dir: Path = Path("config")
    output_dir: Path = Path("output")

    def __post_init__(self):
        """Coerce strings from YAML or the environment to Path."""
        self.data_dir = Path(self.data_dir)
        self.config_dir = Path(self.config_dir)
        self.output_dir = Path(self.output_dir)


@dataclass
class RateConfig:
    """Defaults for incidence/prevalence rate computation."""
    washout_period: int = 365
    first_occurrence_only: bool = True
    rate_type: str = "incidence"
    period_unit: str = "year"

    def __post_init__(self):
        if self.rate_type not in ('incidence', 'prevalence'):
            raise ConfigurationError(
                f"rate_type must be 'incidence' or 'prevalence', got '{self.rate_type}'"
            )
        if int(self.washout_period) < 0:
            raise ConfigurationError("washout_period must be a non-negative number of days")
        self.washout_period = int(self.washout_period)


@dataclass
class ReportConfig:
    """Defaults for feature-extraction report formatting."""
    min_average_value: float = 0.01
    decimal_places: int = 1
    round_decimal: bool = True
    percent_digits: int = 1
    distribution_statistics: List[str] = None
    non_time_varying_remove_pattern: str = (
        "Visit Count|Chads 2 Vasc|Demographics Index Month|"
        "Demographics Post Observation Time|Visit Concept Count|Chads 2|"
        "Demographics Prior Observation Time|Dcsi|Demographics Time In Cohort|"
        "Demographics Index Year Month"
    )

    def __post_init__(self):
        """Set default distribution statistics."""
        if self.distribution_statistics is None:
            self.distribution_statistics = [
                'averageValue', 'standardDeviation', 'medianValue', 'p25Value', 'p75Value'
            ]


@dataclass
class AnalyticsConfig:
    """Execution settings for the analytics layer."""
    parallel_workers: int = 1


class ConfigManager:
    """
    Central configuration manager for kala.

    Loads configuration from multiple sources in priority order:
    1. Environment variables
    2. Local config files (config/local.yaml, config/local.json)
    3. Default config files (config/default.yaml, config/default.json)
    4. Built-in defaults
    """

    def __init__(self, config_dir: Union[str, Path] = "config"):
        self.config_dir = Path(config_dir)

        self._path_config = None
        self._rate_config = None
        self._report_config = None
        self._analytics_config = None
        self._custom_config = {}

        self._load_all_configs()

    def _load_all_configs(self):
        """Merge every source and build the typed sections."""
        configs = {}

        # 1. Default config files
        for filename in ['default.yaml', 'default.yml', 'default.json']:
            config_file = self.config_dir / filename
            if config_file.exists():
                self._merge(configs, self._load_config_file(config_file))

        # 2. Local config files (override defaults)
        for filename in ['local.yaml', 'local.yml', 'local.json']:
            config_file = self.config_dir / filename
            if config_file.exists():
                self._merge(configs, self._load_config_file(config_file))

        # 3. Environment variables (override file configs)
        self._load_env_overrides(configs)

        # Typed sections; unknown keys raise ConfigurationError
        self._path_config = self._build(PathConfig, configs.get('paths', {}))
        self._rate_config = self._build(RateConfig, configs.get('rates', {}))
        self._report_config = self._build(ReportConfig, configs.get('report', {}))
        self._analytics_config = self._build(AnalyticsConfig, configs.get('analytics', {}))
        self._custom_config = configs.get('custom', {})

    @staticmethod
    def _merge(configs: Dict[str, Any], overrides: Dict[str, Any]):
        """Merge one file's sections into the accumulated config."""
        for section, values in overrides.items():
            if isinstance(values, dict):
                configs.setdefault(section, {}).update(values)
            else:
                configs[section] = values

    @staticmethod
    def _build(section_class, values: Dict[str, Any]):
        """Instantiate a config section, rejecting unknown keys."""
        known = {f.name for f in fields(section_class)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown keys for {section_class.__name__}: {', '.join(unknown)}"
            )
        return section_class(**values)

    def _load_config_file(self, config_file: Path) -> Dict[str, Any]:
        """Parse one config file; unreadable files are skipped with a warning."""
        try:
            with open(config_file, 'r') as f:
                if config_file.suffix.lower() in ['.yaml', '.yml']:
                    return yaml.safe_load(f) or {}
                elif config_file.suffix.lower() == '.json':
                    return json.load(f) or {}
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            logger.warning(f"Could not load config file {config_file}: {e}")
        return {}

    def _load_env_overrides(self, configs: Dict[str, Any]):
        """Overlay KALA_* environment variables onto the file sections."""
        env_mappings = {
            'KALA_DATA_DIR': ('paths', 'data_dir'),
            'KALA_OUTPUT_DIR': ('paths', 'output_dir'),
            'KALA_WASHOUT_PERIOD': ('rates', 'washout_period', int),
            'KALA_FIRST_OCCURRENCE_ONLY': ('rates', 'first_occurrence_only', _parse_bool),
            'KALA_RATE_TYPE': ('rates', 'rate_type'),
            'KALA_MIN_AVERAGE_VALUE': ('report', 'min_average_value', float),
            'KALA_PARALLEL_WORKERS': ('analytics', 'parallel_workers', int),
        }

        for env_var, config_path in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                section = config_path[0]
                key = config_path[1]
                transform = config_path[2] if len(config_path) > 2 else str

                if section not in configs:
                    configs[section] = {}

                try:
                    configs[section][key] = transform(value)
                except (ValueError, TypeError) as e:
                    logger.warning(f"Could not parse {env_var}={value}: {e}")

    @property
    def paths(self) -> PathConfig:
        """Path configuration."""
        return self._path_config

    @property
    def rates(self) -> RateConfig:
        """Rate computation defaults."""
        return self._rate_config

    @property
    def report(self) -> ReportConfig:
        """Report formatting defaults."""
        return self._report_config

    @property
    def analytics(self) -> AnalyticsConfig:
        """Execution settings."""
        return self._analytics_config

    def get_custom(self, key: str, default: Any = None) -> Any:
        """Look up a value from the free-form custom section."""
        return self._custom_config.get(key, default)

    def update_custom(self, key: str, value: Any):
        """Set a value in the custom section for this process."""
        self._custom_config[key] = value

    def save_config(self, filename: str = "generated.yaml") -> Path:
        """Write the resolved configuration into config_dir as YAML or JSON."""
        config_data = {
            'paths': {k: str(v) for k, v in asdict(self._path_config).items()},
            'rates': asdict(self._rate_config),
            'report': asdict(self._report_config),
            'analytics': asdict(self._analytics_config),
            'custom': self._custom_config
        }

        self.config_dir.mkdir(exist_ok=True, parents=True)
        output_file = self.config_dir / filename
        with open(output_file, 'w') as f:
            if filename.endswith('.json'):
                json.dump(config_data, f, indent=2, default=str)
            else:
                yaml.safe_dump(config_data, f, default_flow_style=False)

        return output_file


# Process-wide instance used by operations that default from config
_config: Optional[ConfigManager] = None


def get_config() -> ConfigManager:
    """The process-wide ConfigManager, created on first use."""
    global _config
    if _config is None:
        _config = ConfigManager()
    return _config


def reload_config(config_dir: Union[str, Path] = "config") -> ConfigManager:
    """Rebuild the global configuration, optionally from another directory."""
    global _config
    _config = ConfigManager(config_dir)
    return _config
