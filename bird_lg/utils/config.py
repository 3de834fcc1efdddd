#!/usr/bin/env python3
"""
Configuration Management for the looking glass

Provides centralized configuration handling with:
- Environment variable support
- Configuration file support
- Default values and validation
- Immutable snapshots handed to the core at construction time
"""

import copy
import ipaddress
import json
import logging
import os
import re
import shlex
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional, List

from bird_lg.utils.timeout_config import TimeoutType, get_timeout


def _env_flag(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return value.lower() in ["1", "true", "yes", "on"]


def _env_list(name: str) -> Optional[List[str]]:
    value = os.getenv(name)
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class AuthConfig:
    """Bearer token authentication shared by proxy and frontend"""

    enabled: bool = False
    token: Optional[str] = None
    trusted_proxies: List[str] = None

    def __post_init__(self):
        """Load from environment variables if not set"""
        if self.trusted_proxies is None:
            self.trusted_proxies = []
        if _env_flag("BIRDLG_AUTH_ENABLED") is not None:
            self.enabled = _env_flag("BIRDLG_AUTH_ENABLED")
        if os.getenv("BIRDLG_AUTH_TOKEN"):
            self.token = os.getenv("BIRDLG_AUTH_TOKEN")
        if _env_list("BIRDLG_TRUSTED_PROXIES") is not None:
            self.trusted_proxies = _env_list("BIRDLG_TRUSTED_PROXIES")


@dataclass
class ProxyConfig:
    """Proxy agent configuration (one per router)"""

    bird_socket: str = "/var/run/bird/bird.ctl"
    bird6_socket: Optional[str] = None
    listen: str = "8000"
    allowed_nets: List[str] = None
    traceroute_bin: Optional[str] = None
    traceroute_flags: List[str] = None
    traceroute_raw: bool = False
    traceroute_max_concurrent: int = 4
    bird_restrict_cmds: bool = True
    bird_restrict_session: bool = True
    command_timeout: float = None
    traceroute_timeout: float = None
    max_line_size: int = 65536

    def __post_init__(self):
        """Set defaults and load from environment"""
        if self.allowed_nets is None:
            self.allowed_nets = []
        if self.traceroute_flags is None:
            self.traceroute_flags = []
        elif isinstance(self.traceroute_flags, str):
            self.traceroute_flags = shlex.split(self.traceroute_flags)
        if self.command_timeout is None:
            self.command_timeout = get_timeout(TimeoutType.CONTROL_LINK)
        if self.traceroute_timeout is None:
            self.traceroute_timeout = get_timeout(TimeoutType.TRACEROUTE)

        if os.getenv("BIRDLG_BIRD_SOCKET"):
            self.bird_socket = os.getenv("BIRDLG_BIRD_SOCKET")
        if os.getenv("BIRDLG_BIRD6_SOCKET"):
            self.bird6_socket = os.getenv("BIRDLG_BIRD6_SOCKET")
        if os.getenv("BIRDLG_PROXY_LISTEN"):
            self.listen = os.getenv("BIRDLG_PROXY_LISTEN")
        if _env_list("BIRDLG_ALLOWED") is not None:
            self.allowed_nets = _env_list("BIRDLG_ALLOWED")
        if os.getenv("BIRDLG_TRACEROUTE_BIN"):
            self.traceroute_bin = os.getenv("BIRDLG_TRACEROUTE_BIN")
        if os.getenv("BIRDLG_TRACEROUTE_FLAGS"):
            self.traceroute_flags = shlex.split(os.getenv("BIRDLG_TRACEROUTE_FLAGS"))
        if _env_flag("BIRDLG_TRACEROUTE_RAW") is not None:
            self.traceroute_raw = _env_flag("BIRDLG_TRACEROUTE_RAW")
        if os.getenv("BIRDLG_TRACEROUTE_MAX_CONCURRENT"):
            try:
                self.traceroute_max_concurrent = int(
                    os.getenv("BIRDLG_TRACEROUTE_MAX_CONCURRENT")
                )
            except ValueError:
                pass
        if _env_flag("BIRDLG_BIRD_RESTRICT_CMDS") is not None:
            self.bird_restrict_cmds = _env_flag("BIRDLG_BIRD_RESTRICT_CMDS")


@dataclass
class FrontendConfig:
    """Frontend configuration"""

    servers: List[str] = None
    domain: str = ""
    listen: str = "5000"
    proxy_port: int = 8000
    whois_server: str = "whois.verisign-grs.com"
    whois_port: int = 43
    dns_interface: str = "asn.cymru.com"
    bgpmap_info: str = "asn,as-name,ASName,descr"
    all_servers_token: str = "all"
    net_specific_mode: str = ""
    protocol_filter: List[str] = None
    name_filter: str = ""
    timeout: float = None
    allowed_nets: List[str] = None

    def __post_init__(self):
        """Set defaults and load from environment"""
        if self.servers is None:
            self.servers = []
        if self.allowed_nets is None:
            self.allowed_nets = []
        if self.protocol_filter is None:
            self.protocol_filter = []
        if self.timeout is None:
            self.timeout = get_timeout(TimeoutType.PROXY_REQUEST)

        if _env_list("BIRDLG_SERVERS") is not None:
            self.servers = _env_list("BIRDLG_SERVERS")
        if os.getenv("BIRDLG_DOMAIN") is not None:
            self.domain = os.getenv("BIRDLG_DOMAIN")
        if os.getenv("BIRDLG_LISTEN"):
            self.listen = os.getenv("BIRDLG_LISTEN")
        if os.getenv("BIRDLG_PROXY_PORT"):
            try:
                self.proxy_port = int(os.getenv("BIRDLG_PROXY_PORT"))
            except ValueError:
                pass
        if os.getenv("BIRDLG_WHOIS"):
            self.whois_server = os.getenv("BIRDLG_WHOIS")
        if os.getenv("BIRDLG_DNS_INTERFACE") is not None:
            self.dns_interface = os.getenv("BIRDLG_DNS_INTERFACE")
        if os.getenv("BIRDLG_BGPMAP_INFO"):
            self.bgpmap_info = os.getenv("BIRDLG_BGPMAP_INFO")
        if os.getenv("BIRDLG_NET_SPECIFIC_MODE"):
            self.net_specific_mode = os.getenv("BIRDLG_NET_SPECIFIC_MODE")
        if _env_list("BIRDLG_PROTOCOL_FILTER") is not None:
            self.protocol_filter = _env_list("BIRDLG_PROTOCOL_FILTER")
        if os.getenv("BIRDLG_NAME_FILTER"):
            self.name_filter = os.getenv("BIRDLG_NAME_FILTER")
        if os.getenv("BIRDLG_TIMEOUT"):
            try:
                self.timeout = float(os.getenv("BIRDLG_TIMEOUT"))
            except ValueError:
                pass
        if _env_list("BIRDLG_FRONTEND_ALLOWED") is not None:
            self.allowed_nets = _env_list("BIRDLG_FRONTEND_ALLOWED")

    @property
    def info_fields(self) -> List[str]:
        """Configured bgpmap info fields, in display order"""
        return [f.strip() for f in self.bgpmap_info.split(",") if f.strip()]


@dataclass
class LoggingConfig:
    """Logging configuration"""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    log_to_file: bool = False
    log_file: Optional[str] = None
    audit_log_file: Optional[str] = None

    def __post_init__(self):
        """Load from environment variables if not set"""
        if os.getenv("BIRDLG_LOG_LEVEL"):
            self.level = os.getenv("BIRDLG_LOG_LEVEL").upper()
        if os.getenv("BIRDLG_LOG_FILE"):
            self.log_file = os.getenv("BIRDLG_LOG_FILE")
            self.log_to_file = True
        if os.getenv("BIRDLG_AUDIT_LOG_FILE"):
            self.audit_log_file = os.getenv("BIRDLG_AUDIT_LOG_FILE")


@dataclass
class LookingGlassConfig:
    """Main configuration container"""

    proxy: ProxyConfig = None
    frontend: FrontendConfig = None
    auth: AuthConfig = None
    logging: LoggingConfig = None

    def __post_init__(self):
        """Initialize subconfigs if not provided"""
        if self.proxy is None:
            self.proxy = ProxyConfig()
        if self.frontend is None:
            self.frontend = FrontendConfig()
        if self.auth is None:
            self.auth = AuthConfig()
        if self.logging is None:
            self.logging = LoggingConfig()

    def snapshot(self) -> "LookingGlassConfig":
        """Detached copy handed to long-lived components"""
        return copy.deepcopy(self)


class ConfigManager:
    """Configuration management for the looking glass"""

    DEFAULT_CONFIG_PATHS = [
        Path.home() / ".config/bird-lg/config.json",
        Path("/etc/bird-lg/config.json"),
        Path("./config.json"),
    ]

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration manager

        Args:
            config_path: Optional path to configuration file
        """
        self.logger = logging.getLogger(__name__)
        if config_path is None and os.getenv("BIRDLG_CONFIG"):
            config_path = Path(os.getenv("BIRDLG_CONFIG"))
        self.config_path = config_path
        self.config = LookingGlassConfig()

        self._load_config()

    def _load_config(self):
        """Load configuration from file and environment"""
        config_file = self._find_config_file()
        if config_file:
            try:
                self._load_from_file(config_file)
                self.logger.info(f"Loaded configuration from {config_file}")
            except Exception as e:
                self.logger.warning(f"Failed to load config file {config_file}: {e}")

        # Environment variables are loaded in __post_init__ methods
        self.logger.debug("Configuration loaded with environment variable overrides")

    def _find_config_file(self) -> Optional[Path]:
        """Find configuration file in default locations"""
        if self.config_path and self.config_path.exists():
            return self.config_path

        for path in self.DEFAULT_CONFIG_PATHS:
            if path.exists():
                return path

        return None

    def _load_from_file(self, config_path: Path):
        """Load configuration from JSON file"""
        with open(config_path, "r") as f:
            data = json.load(f)
        self._load_from_dict(data)

    def _load_from_dict(self, data: dict):
        """Load configuration from dictionary (side-effect-free)"""
        if "proxy" in data:
            self.config.proxy = ProxyConfig(**data["proxy"])

        if "frontend" in data:
            self.config.frontend = FrontendConfig(**data["frontend"])

        if "auth" in data:
            self.config.auth = AuthConfig(**data["auth"])

        if "logging" in data:
            self.config.logging = LoggingConfig(**data["logging"])

    def save_config(self, config_path: Optional[Path] = None) -> Path:
        """
        Save current configuration to file

        Args:
            config_path: Path to save configuration (default: first default path)

        Returns:
            Path where configuration was saved
        """
        if config_path is None:
            config_path = self.DEFAULT_CONFIG_PATHS[0]

        config_path.parent.mkdir(parents=True, exist_ok=True)

        config_dict = {
            "proxy": asdict(self.config.proxy),
            "frontend": asdict(self.config.frontend),
            "auth": asdict(self.config.auth),
            "logging": asdict(self.config.logging),
        }
        # Never write the shared secret back to disk
        config_dict["auth"]["token"] = None

        with open(config_path, "w") as f:
            json.dump(config_dict, f, indent=2)

        self.logger.info(f"Configuration saved to {config_path}")
        return config_path

    def get_config(self) -> LookingGlassConfig:
        """Get current configuration"""
        return self.config

    @classmethod
    def validate_object(cls, data: dict) -> List[str]:
        """
        Validate configuration from dictionary without side effects

        Args:
            data: Configuration dictionary to validate

        Returns:
            List of validation error messages (empty if valid)
        """
        temp_manager = cls.__new__(cls)
        temp_manager.logger = logging.getLogger(__name__)
        temp_manager.config_path = None
        temp_manager.config = LookingGlassConfig()

        try:
            temp_manager._load_from_dict(data)
        except Exception as e:
            return [f"Failed to load configuration: {e}"]

        return temp_manager.validate_config()

    def validate_config(self) -> List[str]:
        """
        Validate configuration and return list of issues

        Returns:
            List of validation error messages
        """
        issues = []
        proxy = self.config.proxy
        frontend = self.config.frontend
        auth = self.config.auth

        for net in proxy.allowed_nets + frontend.allowed_nets + auth.trusted_proxies:
            try:
                ipaddress.ip_network(net, strict=False)
            except ValueError:
                issues.append(f"Invalid IP address or network in allowed_nets: {net}")

        if proxy.traceroute_max_concurrent < 1:
            issues.append("traceroute_max_concurrent must be at least 1")

        if proxy.command_timeout <= 0 or proxy.traceroute_timeout <= 0:
            issues.append("Proxy timeouts must be positive")

        if not (1 <= frontend.proxy_port <= 65535):
            issues.append(f"proxy_port must be between 1-65535, got {frontend.proxy_port}")

        if frontend.timeout <= 0:
            issues.append("Frontend timeout must be positive")

        if not frontend.all_servers_token:
            issues.append("all_servers_token must not be empty")

        if frontend.name_filter:
            try:
                re.compile(frontend.name_filter)
            except re.error as e:
                issues.append(f"Invalid name_filter regular expression: {e}")

        if auth.enabled and not auth.token:
            issues.append("Authentication enabled but no token configured "
                          "(set BIRDLG_AUTH_TOKEN)")

        return issues


# Global configuration instance with thread-safe singleton pattern
_config_manager = None
_config_manager_lock = threading.RLock()


def get_config_manager(config_path: Optional[Path] = None) -> ConfigManager:
    """
    Get global configuration manager instance using double-checked locking.
    """
    global _config_manager

    if _config_manager is not None:
        return _config_manager

    with _config_manager_lock:
        if _config_manager is None:
            _config_manager = ConfigManager(config_path)

        return _config_manager


def reset_config_manager():
    """Drop the cached manager so the next call re-reads file and environment"""
    global _config_manager
    with _config_manager_lock:
        _config_manager = None


def get_config() -> LookingGlassConfig:
    """Get current configuration"""
    return get_config_manager().get_config()
