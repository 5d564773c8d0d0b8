"""
Configuration loading for nm-static-ip

Search order (later overrides earlier):
1. Built-in defaults
2. /etc/nm-static-ip/config.toml (system-wide)
3. ~/.config/nm-static-ip/config.toml (user global)
4. ./.nm-static-ip.toml (local directory - adjacent invocation)
5. Environment variables (NM_STATIC_IP_*)
6. CLI arguments (highest priority)

Presets are named targets (interface, address, gateway, DNS) selectable
with --preset.
"""

from __future__ import annotations

import os
import logging
import tomllib
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any

from .config import parse_dns_list


logger = logging.getLogger(__name__)

# Config file names
CONFIG_FILENAME = "config.toml"
LOCAL_CONFIG_FILENAME = ".nm-static-ip.toml"
ALT_LOCAL_CONFIG = "nm-static-ip.toml"

# Environment variable prefix
ENV_PREFIX = "NM_STATIC_IP_"


def get_config_dir() -> Path:
    """Get user config directory (XDG-compliant)."""
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / "nm-static-ip"
    return Path.home() / ".config" / "nm-static-ip"


def get_config_paths() -> list[Path]:
    """
    Return list of config paths to check, in precedence order (lowest first).

    Returns paths that WOULD be checked - caller should verify existence.
    """
    paths: list[Path] = []

    # 1. System-wide config
    paths.append(Path("/etc/nm-static-ip") / CONFIG_FILENAME)

    # 2. User global config (XDG)
    paths.append(get_config_dir() / CONFIG_FILENAME)

    # 3. Legacy user config (dotfile in home)
    paths.append(Path.home() / ".nm-static-ip.toml")

    # 4. Local directory config
    cwd = Path.cwd()
    paths.append(cwd / LOCAL_CONFIG_FILENAME)
    paths.append(cwd / ALT_LOCAL_CONFIG)

    return paths


@dataclass
class AddressPreset:
    """A named assignment target."""
    interface: str | None = None
    address: str | None = None
    prefix: int | None = None
    gateway: str | None = None
    dns: list[str] = field(default_factory=list)
    never_default: bool | None = None

    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "interface": self.interface,
            "address": self.address,
            "prefix": self.prefix,
            "gateway": self.gateway,
            "dns": list(self.dns),
            "never_default": self.never_default,
            "description": self.description,
        }


@dataclass
class Settings:
    """
    Merged configuration settings from all sources.

    Attributes represent the final resolved values after merging
    all config files, environment variables, and presets.
    """
    # Address selection
    base_ip: str = "192.168.250.11"
    prefix: int = 24
    dns: list[str] = field(default_factory=lambda: ["1.1.1.1", "8.8.8.8"])
    scan_max: int = 200

    # Preset-provided targets (None = not set)
    interface: str | None = None
    address: str | None = None
    gateway: str | None = None

    # Probing
    probe_method: str = "auto"
    probe_count: int = 2
    probe_timeout: int = 2

    # NetworkManager
    command_timeout: int = 30
    connections_dir: str = "/etc/NetworkManager/system-connections"
    never_default: bool = False

    # Behavior defaults
    dry_run: bool = False
    skip_confirmation: bool = False

    # Preset management
    default_preset: str | None = None
    presets: dict[str, AddressPreset] = field(default_factory=dict)

    # Metadata
    config_sources: list[str] = field(default_factory=list)

    def get_preset(self, name: str) -> AddressPreset | None:
        """Get a named preset."""
        return self.presets.get(name)

    def apply_preset(self, name: str) -> bool:
        """
        Apply a named preset to current settings.

        Returns True if preset was found and applied.
        """
        preset = self.presets.get(name)
        if not preset:
            return False

        if preset.interface:
            self.interface = preset.interface
        if preset.address:
            self.address = preset.address
        if preset.prefix is not None:
            self.prefix = preset.prefix
        if preset.gateway:
            self.gateway = preset.gateway
        if preset.dns:
            self.dns = list(preset.dns)
        if preset.never_default is not None:
            self.never_default = preset.never_default
        return True

    def list_presets(self) -> list[str]:
        """List available preset names."""
        return list(self.presets.keys())


# Keys of [defaults] and how to coerce them
_STR_KEYS = ("base_ip", "probe_method", "connections_dir")
_INT_KEYS = ("prefix", "scan_max", "probe_count", "probe_timeout", "command_timeout")
_BOOL_KEYS = ("never_default", "dry_run", "skip_confirmation")


def _dns_value(value: Any) -> list[str]:
    """Accept a TOML list or a comma-separated string."""
    if isinstance(value, str):
        return list(parse_dns_list(value))
    return list(parse_dns_list(",".join(str(v) for v in value)))


def _merge_defaults(settings: Settings, data: dict[str, Any]) -> None:
    """Merge [defaults] section into settings."""
    defaults = data.get("defaults", {})

    for key in _STR_KEYS:
        if key in defaults:
            setattr(settings, key, str(defaults[key]))
    for key in _INT_KEYS:
        if key in defaults:
            setattr(settings, key, int(defaults[key]))
    for key in _BOOL_KEYS:
        if key in defaults:
            setattr(settings, key, bool(defaults[key]))
    if "dns" in defaults:
        settings.dns = _dns_value(defaults["dns"])


def _merge_presets(settings: Settings, data: dict[str, Any]) -> None:
    """Merge [presets.*] sections into settings."""
    presets_data = data.get("presets", {})

    for name, preset_data in presets_data.items():
        if not isinstance(preset_data, dict):
            continue

        if "interface" not in preset_data and "address" not in preset_data:
            logger.warning(f"Preset '{name}' needs an interface or an address, skipping")
            continue

        preset = AddressPreset(
            interface=preset_data.get("interface"),
            address=preset_data.get("address"),
            prefix=int(preset_data["prefix"]) if "prefix" in preset_data else None,
            gateway=preset_data.get("gateway"),
            dns=_dns_value(preset_data["dns"]) if "dns" in preset_data else [],
            never_default=preset_data.get("never_default"),
            description=preset_data.get("description", ""),
        )
        settings.presets[name] = preset


def _merge_config(settings: Settings, data: dict[str, Any], source: str) -> None:
    """Merge a config dict into settings."""
    settings.config_sources.append(source)

    # Top-level default_preset
    if "default_preset" in data:
        settings.default_preset = data["default_preset"]

    # Merge sections
    _merge_defaults(settings, data)
    _merge_presets(settings, data)


def _apply_env_overrides(settings: Settings) -> None:
    """Apply environment variable overrides."""
    env_mappings = {
        f"{ENV_PREFIX}BASE_IP": "base_ip",
        f"{ENV_PREFIX}PROBE_METHOD": "probe_method",
        f"{ENV_PREFIX}CONNECTIONS_DIR": "connections_dir",
        f"{ENV_PREFIX}PRESET": "default_preset",
    }

    int_mappings = {
        f"{ENV_PREFIX}PREFIX": "prefix",
        f"{ENV_PREFIX}SCAN_MAX": "scan_max",
        f"{ENV_PREFIX}COMMAND_TIMEOUT": "command_timeout",
    }

    bool_mappings = {
        f"{ENV_PREFIX}NEVER_DEFAULT": "never_default",
        f"{ENV_PREFIX}DRY_RUN": "dry_run",
        f"{ENV_PREFIX}SKIP_CONFIRMATION": "skip_confirmation",
    }

    for env_var, attr in env_mappings.items():
        value = os.environ.get(env_var)
        if value:
            setattr(settings, attr, value)
            settings.config_sources.append(f"env:{env_var}")

    for env_var, attr in int_mappings.items():
        value = os.environ.get(env_var)
        if value:
            try:
                setattr(settings, attr, int(value))
            except ValueError:
                logger.warning(f"Ignoring {env_var}={value!r}: not an integer")
                continue
            settings.config_sources.append(f"env:{env_var}")

    for env_var, attr in bool_mappings.items():
        value = os.environ.get(env_var)
        if value is not None:
            setattr(settings, attr, value.lower() in ("1", "true", "yes"))
            settings.config_sources.append(f"env:{env_var}")

    dns = os.environ.get(f"{ENV_PREFIX}DNS")
    if dns:
        try:
            settings.dns = _dns_value(dns)
            settings.config_sources.append(f"env:{ENV_PREFIX}DNS")
        except ValueError as e:
            logger.warning(f"Ignoring {ENV_PREFIX}DNS: {e}")


def load_settings(preset: str | None = None) -> Settings:
    """
    Load and merge settings from all config sources.

    Args:
        preset: Optional preset name to apply after loading.
                If None and default_preset is set in config, uses that.

    Returns:
        Merged Settings object with all values resolved.
    """
    settings = Settings()

    # Load from each config path that exists
    for config_path in get_config_paths():
        if config_path.exists():
            try:
                with open(config_path, "rb") as f:
                    data = tomllib.load(f)
                _merge_config(settings, data, str(config_path))
                logger.debug(f"Loaded config from {config_path}")
            except (OSError, tomllib.TOMLDecodeError, ValueError, TypeError) as e:
                logger.warning(f"Failed to load {config_path}: {e}")

    # Apply environment overrides
    _apply_env_overrides(settings)

    # Apply preset if specified (CLI arg takes precedence)
    active_preset = preset or settings.default_preset
    if active_preset:
        if settings.apply_preset(active_preset):
            logger.debug(f"Applied preset: {active_preset}")
        else:
            logger.warning(f"Preset not found: {active_preset}")

    return settings


def ensure_config_dir() -> Path:
    """Ensure user config directory exists and return its path."""
    config_dir = get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_default_config_content() -> str:
    """Return default config file content as a string."""
    return '''# nm-static-ip - User Configuration
# Place this file at: ~/.config/nm-static-ip/config.toml
# Or use a local override: ./.nm-static-ip.toml

# Default preset to use when none specified via CLI
# default_preset = "lab"

# Global defaults applied to all operations
[defaults]
base_ip = "192.168.250.11"
prefix = 24
dns = ["1.1.1.1", "8.8.8.8"]
scan_max = 200
probe_method = "auto"     # auto, arping or ping
probe_count = 2
probe_timeout = 2
command_timeout = 30      # seconds allowed per nmcli/ip call
connections_dir = "/etc/NetworkManager/system-connections"
never_default = false

# Named presets for recurring assignments
# Use with: nm-static-ip --preset lab

[presets.lab]
interface = "ens27f0"
prefix = 24
never_default = true
description = "Lab segment, no default route"

# Example: fixed address on a storage network
# [presets.storage]
# interface = "ib0"
# address = "10.20.0.15"
# gateway = "10.20.0.1"
# dns = ["10.20.0.2"]
'''


def init_config(force: bool = False) -> Path | None:
    """
    Initialize user config file with defaults.

    Args:
        force: If True, overwrite existing config.

    Returns:
        Path to created config file, or None if it already exists and force=False.
    """
    config_dir = ensure_config_dir()
    config_path = config_dir / CONFIG_FILENAME

    if config_path.exists() and not force:
        return None

    config_path.write_text(get_default_config_content())
    return config_path
