"""
Configuration validator for Cloud Stash.

This module provides validation for the [Storage] and [Proxy] sections of
settings.ini with helpful error messages and suggestions for fixing issues.
"""

import os
import configparser
from typing import List, Optional, Dict, Any


class ConfigValidationError(Exception):
    """Custom exception for configuration validation errors."""

    def __init__(self, message: str, suggestions: Optional[List[str]] = None):
        self.message = message
        self.suggestions = suggestions or []
        super().__init__(self.message)

    def __str__(self):
        result = f"Configuration Error: {self.message}"
        if self.suggestions:
            result += "\n\nSuggestions:"
            for suggestion in self.suggestions:
                result += f"\n  • {suggestion}"
        return result


def default_settings_path() -> str:
    """Return the settings.ini path at the repository root."""
    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(base_dir, 'settings.ini')


class ConfigValidator:
    """Validates storage and proxy settings before any provider is built."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or default_settings_path()
        self.config_parser = configparser.ConfigParser()
        self.errors = []
        self.warnings = []
        self._load_config()

    def _load_config(self):
        """Load configuration from settings.ini."""
        if not os.path.exists(self.config_path):
            raise ConfigValidationError(
                f"{os.path.basename(self.config_path)} file not found",
                ["Create a settings.ini file in the root directory",
                 "Copy from settings.ini.example if available",
                 "Or configure the provider with STORAGE_* environment variables"]
            )

        try:
            self.config_parser.read(self.config_path)
        except configparser.Error as e:
            raise ConfigValidationError(
                f"Failed to parse settings.ini: {e}",
                ["Check for syntax errors in settings.ini",
                 "Ensure proper section headers like [Storage]",
                 "Verify key=value format"]
            )

    def validate_storage_section(self):
        """Validate the [Storage] section."""
        if not self.config_parser.has_section('Storage'):
            if not os.getenv('STORAGE_PROVIDER'):
                self.errors.append("Missing [Storage] section and STORAGE_PROVIDER is not set")
            return

        # Imported here to avoid a cycle: storage.config raises ConfigValidationError
        from cloudstash.storage.base import ProviderType

        provider = os.getenv('STORAGE_PROVIDER') or self.config_parser.get('Storage', 'provider', fallback='')
        valid = [p.value for p in ProviderType]
        if provider.strip().lower() not in valid:
            self.errors.append(
                f"Invalid provider '{provider}'. Must be one of: {', '.join(valid)}"
            )

        for key in ('is_private', 'force_path_style'):
            try:
                self.config_parser.getboolean('Storage', key, fallback=False)
            except ValueError:
                self.errors.append(f"Invalid boolean value for {key}. Must be true or false")

        for key, value in self.config_parser.items('Storage'):
            if value and value.isspace():
                self.warnings.append(f"{key} contains only whitespace - will fallback to environment variable")

        domain = self.config_parser.get('Storage', 'public_domain', fallback='')
        if domain and domain.startswith('http://'):
            self.warnings.append("public_domain uses plain http - shared links will not be encrypted")

    def validate_proxy_section(self):
        """Validate the [Proxy] section."""
        if not self.config_parser.has_section('Proxy'):
            return

        try:
            enabled = self.config_parser.getboolean('Proxy', 'enabled', fallback=False)
        except ValueError:
            self.errors.append("Invalid boolean value for enabled in [Proxy]. Must be true or false")
            return

        if not enabled:
            return

        url = self.config_parser.get('Proxy', 'url', fallback='')
        host = self.config_parser.get('Proxy', 'host', fallback='')
        if not url and not host:
            self.errors.append("Proxy is enabled but neither url nor host is set")

        port = self.config_parser.get('Proxy', 'port', fallback='')
        if port:
            if not port.isdigit() or not 0 < int(port) < 65536:
                self.errors.append(f"Invalid proxy port '{port}'. Must be between 1 and 65535")

        protocol = self.config_parser.get('Proxy', 'protocol', fallback='http')
        if protocol not in ('http', 'https', 'socks5', 'socks5h'):
            self.errors.append(
                f"Invalid proxy protocol '{protocol}'. Must be one of: http, https, socks5, socks5h"
            )

    def validate_all(self) -> Dict[str, Any]:
        """
        Perform validation of all storage configuration.

        Returns:
            Dict with validation results including errors, warnings, and summary.
        """
        self.errors = []
        self.warnings = []

        self.validate_storage_section()
        self.validate_proxy_section()

        return {
            'valid': len(self.errors) == 0,
            'errors': self.errors,
            'warnings': self.warnings,
            'error_count': len(self.errors),
            'warning_count': len(self.warnings)
        }


def validate_configuration(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Convenience function to validate configuration.

    Returns:
        Dict with validation results.

    Raises:
        ConfigValidationError: If critical configuration errors are found.
    """
    validator = ConfigValidator(config_path)
    result = validator.validate_all()

    if not result['valid']:
        error_msg = f"Found {result['error_count']} configuration error(s):\n"
        error_msg += "\n".join(f"  • {error}" for error in result['errors'])

        suggestions = [
            "Check your settings.ini file for syntax errors",
            "Verify the [Storage] provider name is spelled correctly",
            "Ensure boolean values are 'true' or 'false'",
        ]

        raise ConfigValidationError(error_msg, suggestions)

    return result
