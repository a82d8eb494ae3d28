#!/usr/bin/env python3
"""
Configuration Manager for the ECR image manager

This module handles loading and managing configuration from config.yaml
and environment variables.
"""

import logging
import os
import re
from typing import Any, Dict, List

import yaml

# BatchDeleteImage accepts at most this many image ids per call
ECR_MAX_BATCH_SIZE = 100
# DescribeRepositories / DescribeImages accept maxResults up to 1000
ECR_MAX_PAGE_SIZE = 1000


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""


class ConfigManager:
    """Manages configuration for the ECR image manager"""

    def __init__(self, config_file: str = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to config.yaml or CONFIG_FILE env var)
            validate: If True, validate configuration on initialization
        """
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", "config.yaml")
        self.config_file = config_file
        self.config = self._load_config()

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = {
            "aws": {"region": "us-east-1"},
            "registry": {
                "page_size": 100,
                "delete_batch_size": ECR_MAX_BATCH_SIZE,
                "max_pool_connections": 20,
                "max_attempts": 3,  # SDK-level attempts per call, including the first
            },
            "server": {
                "host": "0.0.0.0",
                "port": 8081,
                "cors_origins": ["http://localhost:3000"],
                "api_key": "",
            },
            "api": {"default_limit": 10},
            "cache": {"global_stats_ttl": 12 * 60 * 60},
            "analysis": {"max_workers": 1, "progress_log_interval": 50},
        }

        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, "r") as f:
                    user_config = yaml.safe_load(f) or {}
                return self._merge_config(default_config, user_config)
            else:
                logging.debug(f"Config file {self.config_file} not found, using defaults")
                return default_config
        except (OSError, yaml.YAMLError) as e:
            logging.error(f"Error loading config file {self.config_file}: {e}")
            return default_config

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _get_int(self, section: str, key: str, default: int) -> int:
        value = self.config.get(section, {}).get(key, default)
        try:
            return int(value)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"{section}.{key} must be an integer, got: {value} (type: {type(value).__name__})"
            )

    # AWS configuration
    def get_aws_region(self) -> str:
        """Get AWS region from environment or config"""
        return os.environ.get("AWS_REGION") or self.config["aws"]["region"]

    # Registry configuration
    def get_page_size(self) -> int:
        """Get maxResults used for every paginated ECR listing call"""
        return self._get_int("registry", "page_size", 100)

    def get_delete_batch_size(self) -> int:
        """Get number of digests sent per BatchDeleteImage call"""
        return self._get_int("registry", "delete_batch_size", ECR_MAX_BATCH_SIZE)

    def get_max_pool_connections(self) -> int:
        """Get botocore connection pool size"""
        return self._get_int("registry", "max_pool_connections", 20)

    def get_max_attempts(self) -> int:
        """Get botocore max attempts per ECR call"""
        return self._get_int("registry", "max_attempts", 3)

    # Server configuration
    def get_server_host(self) -> str:
        """Get bind address for the HTTP server"""
        return self.config["server"]["host"]

    def get_server_port(self) -> int:
        """Get HTTP port from environment or config"""
        port = os.environ.get("PORT") or self.config["server"]["port"]
        try:
            return int(port)
        except (ValueError, TypeError):
            raise ConfigValidationError(f"server.port must be an integer, got: {port} (type: {type(port).__name__})")

    def get_cors_origins(self) -> List[str]:
        """Get allowed CORS origins. CORS_ALLOWED_ORIGINS is a comma separated list."""
        env_origins = os.environ.get("CORS_ALLOWED_ORIGINS")
        if env_origins:
            return [origin.strip() for origin in env_origins.split(",") if origin.strip()]
        origins = self.config["server"].get("cors_origins") or []
        if isinstance(origins, str):
            return [origins]
        return list(origins)

    def get_api_key(self) -> str:
        """Get the X-API-Key value required by the API (empty disables the check)"""
        return os.environ.get("BACKEND_API_KEY") or self.config["server"].get("api_key") or ""

    # API configuration
    def get_default_limit(self) -> int:
        """Get default result count for the top-N image endpoints"""
        return self._get_int("api", "default_limit", 10)

    # Cache configuration
    def get_global_stats_ttl(self) -> int:
        """Get global stats cache window in seconds"""
        return self._get_int("cache", "global_stats_ttl", 12 * 60 * 60)

    # Analysis configuration
    def get_max_workers(self) -> int:
        """Get number of repositories fetched concurrently during aggregation"""
        return self._get_int("analysis", "max_workers", 1)

    def get_progress_log_interval(self) -> int:
        """Get how many repositories are processed between progress log lines"""
        return self._get_int("analysis", "progress_log_interval", 50)

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors = []
        warnings = []

        region = self.get_aws_region()
        if not region or not str(region).strip():
            errors.append("AWS region is required and cannot be empty")
        elif not self._is_valid_region(region):
            warnings.append(f"AWS region '{region}' does not look like a region name (e.g. us-east-1)")

        try:
            page_size = self.get_page_size()
            if page_size < 1 or page_size > ECR_MAX_PAGE_SIZE:
                errors.append(f"registry.page_size must be between 1 and {ECR_MAX_PAGE_SIZE}, got: {page_size}")

            batch_size = self.get_delete_batch_size()
            if batch_size < 1 or batch_size > ECR_MAX_BATCH_SIZE:
                errors.append(
                    f"registry.delete_batch_size must be between 1 and {ECR_MAX_BATCH_SIZE}, got: {batch_size}"
                )

            if self.get_max_pool_connections() < 1:
                errors.append("registry.max_pool_connections must be a positive integer")

            if self.get_max_attempts() < 1:
                errors.append("registry.max_attempts must be a positive integer")

            port = self.get_server_port()
            if port < 1 or port > 65535:
                errors.append(f"server.port must be an integer between 1 and 65535, got: {port}")

            default_limit = self.get_default_limit()
            if default_limit < 1:
                errors.append(f"api.default_limit must be a positive integer, got: {default_limit}")

            ttl = self.get_global_stats_ttl()
            if ttl < 0:
                errors.append(f"cache.global_stats_ttl must be a non-negative integer, got: {ttl}")
            elif ttl == 0:
                warnings.append("cache.global_stats_ttl is 0, every stats request will scan the whole registry")

            max_workers = self.get_max_workers()
            if max_workers < 1:
                errors.append(f"analysis.max_workers must be a positive integer, got: {max_workers}")
            elif max_workers > 32:
                warnings.append(f"analysis.max_workers is very high ({max_workers}), ECR may throttle requests")

            if self.get_progress_log_interval() < 1:
                errors.append("analysis.progress_log_interval must be a positive integer")
        except ConfigValidationError as e:
            errors.append(str(e))

        for origin in self.get_cors_origins():
            if origin != "*" and not origin.startswith(("http://", "https://")):
                errors.append(f"CORS origin '{origin}' must start with http:// or https://")

        # Log warnings
        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        # Raise error if there are validation errors
        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg)

    def _is_valid_region(self, region: str) -> bool:
        """Validate AWS region name format"""
        return bool(re.match(r"^[a-z]{2}(-gov|-iso[a-z]*)?-[a-z]+-\d+$", region))

    def print_config(self):
        """Print current configuration"""
        print("Current Configuration:")
        print(f"  AWS Region: {self.get_aws_region()}")
        print(f"  Page Size: {self.get_page_size()}")
        print(f"  Delete Batch Size: {self.get_delete_batch_size()}")
        print(f"  Server: {self.get_server_host()}:{self.get_server_port()}")
        print(f"  CORS Origins: {', '.join(self.get_cors_origins()) or 'none'}")
        print(f"  API Key: {'set' if self.get_api_key() else 'Not set'}")
        print(f"  Global Stats TTL: {self.get_global_stats_ttl()}s")
        print(f"  Max Workers: {self.get_max_workers()}")


# Global config manager instance
# Validation can be disabled by setting SKIP_CONFIG_VALIDATION=true environment variable
# This is useful for testing or when you know the config is valid
config_manager = ConfigManager(
    validate=os.environ.get("SKIP_CONFIG_VALIDATION", "").lower() not in ("true", "1", "yes")
)
