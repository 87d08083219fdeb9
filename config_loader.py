"""Configuration loader with YAML support and environment variable substitution."""

import copy
import os
import re
from typing import Any, Dict

import yaml

DEFAULT_CONFIG: Dict[str, Any] = {
    'source': {
        'export_path': None
    },
    'export': {
        'output_directory': './markdown-export',
        'media_directory': 'media',
        'default_image_format': 'png',
        'max_workers': 1,
        'progress_bars': True
    },
    'media': {
        'fetch_timeout': 30,
        'fetch_attempts': 1,
        'retry_backoff': 1.0
    },
    'migration': {
        'notebooks': [],
        'section': None,
        'page_id': None,
        'dry_run': False
    },
    'logging': {
        'level': None,
        'file': None
    }
}

IMAGE_FORMAT_PATTERN = re.compile(r'^[A-Za-z0-9]+$')


class ConfigLoader:
    """Handles loading and validation of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

    @classmethod
    def load(cls, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file with environment variable substitution.

        Values missing from the file are filled from DEFAULT_CONFIG.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Parsed configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if config_data is None:
            config_data = {}

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        # Substitute environment variables recursively
        config_data = cls._substitute_env_vars_recursive(config_data)

        return cls.with_defaults(config_data)

    @classmethod
    def with_defaults(cls, config: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``config`` with every missing setting taken from DEFAULT_CONFIG."""
        return _deep_merge(DEFAULT_CONFIG, config)

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate configuration for required fields and correct values.

        Args:
            config: Configuration dictionary to validate

        Raises:
            ValueError: If validation fails
        """
        cls._validate_required_field(config, 'source.export_path')
        export_path = get_nested(config, 'source.export_path')
        if not os.path.isdir(export_path):
            raise ValueError(f"source.export_path '{export_path}' is not a valid directory")

        cls._validate_required_field(config, 'export.output_directory')
        output_dir = get_nested(config, 'export.output_directory')
        if os.path.exists(output_dir) and not os.path.isdir(output_dir):
            raise ValueError(f"export.output_directory '{output_dir}' is not a directory")

        media_directory = get_nested(config, 'export.media_directory', 'media')
        if not isinstance(media_directory, str) or not media_directory or os.path.isabs(media_directory):
            raise ValueError("export.media_directory must be a non-empty relative directory name")

        image_format = get_nested(config, 'export.default_image_format', 'png')
        if not isinstance(image_format, str) or not IMAGE_FORMAT_PATTERN.match(image_format):
            raise ValueError("export.default_image_format must be a file extension such as 'png'")

        max_workers = get_nested(config, 'export.max_workers', 1)
        if not isinstance(max_workers, int) or isinstance(max_workers, bool) or max_workers < 1:
            raise ValueError("export.max_workers must be a positive integer")

        progress_bars = get_nested(config, 'export.progress_bars', True)
        if not isinstance(progress_bars, bool):
            raise ValueError("export.progress_bars must be a boolean")

        fetch_timeout = get_nested(config, 'media.fetch_timeout', 30)
        if fetch_timeout is not None and (
                not isinstance(fetch_timeout, (int, float)) or isinstance(fetch_timeout, bool)
                or fetch_timeout <= 0):
            raise ValueError("media.fetch_timeout must be a positive number or null")

        fetch_attempts = get_nested(config, 'media.fetch_attempts', 1)
        if not isinstance(fetch_attempts, int) or isinstance(fetch_attempts, bool) or fetch_attempts < 1:
            raise ValueError("media.fetch_attempts must be a positive integer")

        retry_backoff = get_nested(config, 'media.retry_backoff', 1.0)
        if not isinstance(retry_backoff, (int, float)) or isinstance(retry_backoff, bool) or retry_backoff < 0:
            raise ValueError("media.retry_backoff must be a non-negative number")

        notebooks = get_nested(config, 'migration.notebooks', [])
        if notebooks is not None and (
                not isinstance(notebooks, list) or not all(isinstance(name, str) for name in notebooks)):
            raise ValueError("migration.notebooks must be a list of notebook names")

        dry_run = get_nested(config, 'migration.dry_run', False)
        if not isinstance(dry_run, bool):
            raise ValueError("migration.dry_run must be a boolean")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Merge configuration file with CLI arguments.
        CLI arguments take precedence over config file values.

        Args:
            config: Base configuration dictionary
            args: CLI arguments with attributes matching config keys

        Returns:
            Merged configuration dictionary
        """
        merged = copy.deepcopy(config)

        # Ensure nested dictionaries exist
        for section in ('source', 'export', 'migration', 'logging'):
            merged.setdefault(section, {})

        if getattr(args, 'source', None):
            merged['source']['export_path'] = args.source

        if getattr(args, 'output_dir', None):
            merged['export']['output_directory'] = args.output_dir

        if getattr(args, 'workers', None):
            merged['export']['max_workers'] = args.workers

        if getattr(args, 'no_progress', False):
            merged['export']['progress_bars'] = False

        if getattr(args, 'notebooks', None):
            merged['migration']['notebooks'] = args.notebooks

        if getattr(args, 'section', None):
            merged['migration']['section'] = args.section

        if getattr(args, 'page_id', None):
            merged['migration']['page_id'] = args.page_id

        if getattr(args, 'dry_run', None) is not None:
            merged['migration']['dry_run'] = args.dry_run

        if getattr(args, 'log_file', None):
            merged['logging']['file'] = args.log_file

        verbose = getattr(args, 'verbose', 0)
        if verbose >= 2:
            merged['logging']['level'] = 'DEBUG'
        elif verbose == 1:
            merged['logging']['level'] = 'INFO'

        return merged

    @classmethod
    def _substitute_env_vars_recursive(cls, data: Any) -> Any:
        """Recursively substitute environment variables in data structure."""
        if isinstance(data, dict):
            return {key: cls._substitute_env_vars_recursive(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [cls._substitute_env_vars_recursive(item) for item in data]
        elif isinstance(data, str):
            return cls._substitute_env_vars(data)
        else:
            return data

    @classmethod
    def _substitute_env_vars(cls, value: str) -> str:
        """Substitute environment variables in a string value."""
        def replace_match(match):
            var_name = match.group(1)
            env_value = os.getenv(var_name)
            return env_value if env_value is not None else match.group(0)

        return cls.ENV_VAR_PATTERN.sub(replace_match, value)

    @staticmethod
    def _validate_required_field(config_section: dict, field: str) -> None:
        """Validate that a required field exists and has a value."""
        value = get_nested(config_section, field)
        if value is None or value == '':
            raise ValueError(f"Missing required configuration: {field}")

        # Check for unsubstituted environment variables
        if isinstance(value, str) and '${' in value:
            match = ConfigLoader.ENV_VAR_PATTERN.search(value)
            var_name = match.group(1) if match else value
            raise ValueError(
                f"Configuration field '{field}' contains unsubstituted environment variable: {value}. "
                f"Please set the {var_name} environment variable or provide a value in config file."
            )


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "export.output_directory")
        default: Default value if path doesn't exist

    Returns:
        Value at the nested path or default
    """
    keys = path.split('.')
    value = config

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


__all__ = ['DEFAULT_CONFIG', 'ConfigLoader', 'get_nested']
