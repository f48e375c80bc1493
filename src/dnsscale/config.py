"""Configuration loading and validation.

Values are layered, highest priority first: command-line flags, environment
variables, the YAML config file, built-in defaults.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .models import ConfigError

DEFAULT_CONFIG_NAME = ".dnsscale"
DEFAULT_WORKERS = 2
DEFAULT_POLL_INTERVAL = 30.0
SUPPORTED_PROVIDERS = ("route53", "cloudflare", "pihole", "adguard")
LOG_LEVELS = ("debug", "info", "warn", "error")
LOG_FORMATS = ("json", "console")

ENV_BINDINGS: Dict[str, str] = {
    "tailscale.api_key": "TAILSCALE_API_KEY",
    "tailscale.tailnet": "TAILSCALE_TAILNET",
    "dns.provider": "DNS_PROVIDER",
    "dns.domain": "DNS_DOMAIN",
    "dns.zone_id": "DNS_ZONE_ID",
    "dns.cloudflare.api_token": "CLOUDFLARE_API_TOKEN",
    "dns.route53.profile": "AWS_PROFILE",
    "dns.route53.region": "AWS_REGION",
    "dns.pihole.base_url": "PIHOLE_BASE_URL",
    "dns.pihole.api_token": "PIHOLE_API_TOKEN",
    "dns.adguard.base_url": "ADGUARD_URL",
    "dns.adguard.username": "ADGUARD_USERNAME",
    "dns.adguard.password": "ADGUARD_PASSWORD",
    "logging.level": "LOG_LEVEL",
    "logging.format": "LOG_FORMAT",
}

# =============================================================================
# Config Data Classes
# =============================================================================


@dataclass
class TailscaleConfig:
    api_key: str = ""
    tailnet: str = ""


@dataclass
class Route53Config:
    profile: str = ""
    region: str = ""


@dataclass
class CloudflareConfig:
    api_token: str = ""


@dataclass
class PiholeConfig:
    base_url: str = ""
    api_token: str = ""
    tls_insecure_skip_verify: bool = False


@dataclass
class AdGuardConfig:
    base_url: str = ""
    username: str = ""
    password: str = ""


@dataclass
class DNSConfig:
    provider: str = ""
    domain: str = ""
    zone_id: str = ""
    route53: Route53Config = field(default_factory=Route53Config)
    cloudflare: CloudflareConfig = field(default_factory=CloudflareConfig)
    pihole: PiholeConfig = field(default_factory=PiholeConfig)
    adguard: AdGuardConfig = field(default_factory=AdGuardConfig)


@dataclass
class AppConfig:
    workers: int = DEFAULT_WORKERS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    required_tags: List[str] = field(default_factory=list)


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"


@dataclass
class Config:
    """Application configuration."""

    tailscale: TailscaleConfig = field(default_factory=TailscaleConfig)
    dns: DNSConfig = field(default_factory=DNSConfig)
    app: AppConfig = field(default_factory=AppConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source_path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], source_path: Optional[str] = None) -> "Config":
        ts = _section(data, "tailscale")
        dns = _section(data, "dns")
        app = _section(data, "app")
        log = _section(data, "logging")
        cloudflare = _section(dns, "cloudflare")
        route53 = _section(dns, "route53")
        pihole = _section(dns, "pihole")
        adguard = _section(dns, "adguard")

        return cls(
            tailscale=TailscaleConfig(
                api_key=_str(ts.get("api_key")),
                tailnet=_str(ts.get("tailnet")),
            ),
            dns=DNSConfig(
                provider=_str(dns.get("provider")).lower(),
                domain=_str(dns.get("domain")),
                zone_id=_str(dns.get("zone_id")),
                route53=Route53Config(
                    profile=_str(route53.get("profile")),
                    region=_str(route53.get("region")),
                ),
                cloudflare=CloudflareConfig(api_token=_str(cloudflare.get("api_token"))),
                pihole=PiholeConfig(
                    base_url=_str(pihole.get("base_url")),
                    api_token=_str(pihole.get("api_token")),
                    tls_insecure_skip_verify=_parse_bool(
                        pihole.get("tls_insecure_skip_verify"), default=False
                    ),
                ),
                adguard=AdGuardConfig(
                    base_url=_str(adguard.get("base_url")),
                    username=_str(adguard.get("username")),
                    password=_str(adguard.get("password")),
                ),
            ),
            app=AppConfig(
                workers=_parse_int(app.get("workers"), "app.workers"),
                poll_interval=parse_duration(app.get("poll_interval")),
                required_tags=_parse_list(app.get("required_tags")),
            ),
            logging=LoggingConfig(
                level=_str(log.get("level")).lower(),
                format=_str(log.get("format")).lower(),
            ),
            source_path=source_path,
        )

    def validate(self) -> None:
        """Check required values and fill in defaults. Raises ConfigError."""
        if not self.tailscale.api_key:
            raise ConfigError("tailscale.api_key is required")
        if not self.tailscale.tailnet:
            raise ConfigError("tailscale.tailnet is required")
        if not self.dns.provider:
            raise ConfigError("dns.provider is required")
        if not self.dns.domain:
            raise ConfigError("dns.domain is required")

        provider = self.dns.provider
        if provider == "route53":
            if not self.dns.zone_id:
                raise ConfigError("dns.zone_id is required for route53 provider")
        elif provider == "cloudflare":
            if not self.dns.zone_id:
                raise ConfigError("dns.zone_id is required for cloudflare provider")
            if not self.dns.cloudflare.api_token:
                raise ConfigError(
                    "dns.cloudflare.api_token is required when using cloudflare provider"
                )
        elif provider == "pihole":
            if not self.dns.pihole.base_url:
                raise ConfigError("dns.pihole.base_url is required when using pihole provider")
            if not self.dns.pihole.api_token:
                raise ConfigError("dns.pihole.api_token is required when using pihole provider")
        elif provider == "adguard":
            if not self.dns.adguard.base_url:
                raise ConfigError("dns.adguard.base_url is required when using adguard provider")
        else:
            raise ConfigError(
                f"unsupported dns provider: {provider} "
                f"(supported: {', '.join(SUPPORTED_PROVIDERS)})"
            )

        if self.app.workers <= 0:
            self.app.workers = DEFAULT_WORKERS
        if self.app.poll_interval <= 0:
            self.app.poll_interval = DEFAULT_POLL_INTERVAL

        if not self.logging.level:
            self.logging.level = "info"
        elif self.logging.level not in LOG_LEVELS:
            raise ConfigError(
                f"invalid logging level: {self.logging.level} (supported: {', '.join(LOG_LEVELS)})"
            )

        if not self.logging.format:
            self.logging.format = "console"
        elif self.logging.format not in LOG_FORMATS:
            raise ConfigError(
                f"invalid logging format: {self.logging.format} "
                f"(supported: {', '.join(LOG_FORMATS)})"
            )


# =============================================================================
# Loading
# =============================================================================


def load_config(
    path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
    search_dirs: Optional[List[Path]] = None,
) -> Config:
    """Load and validate configuration.

    Args:
        path: Explicit config file. When unset, ``.dnsscale.yaml`` is looked up in
            the home directory and then the working directory.
        overrides: Dotted keys (``"app.workers"``) from the command line. ``None``
            values are ignored.
        environ: Environment mapping, defaults to ``os.environ``.
        search_dirs: Directories searched when ``path`` is unset.

    Raises:
        ConfigError: If the file is unreadable or the result is invalid.
    """
    environ = os.environ if environ is None else environ
    data, used_path = _read_config_file(path, search_dirs)

    for key, env_name in ENV_BINDINGS.items():
        value = environ.get(env_name)
        if value:
            _set_dotted(data, key, value)

    for key, value in (overrides or {}).items():
        if value is not None:
            _set_dotted(data, key, value)

    config = Config.from_dict(data, source_path=used_path)
    config.validate()
    return config


def find_config_file(search_dirs: Optional[List[Path]] = None) -> Optional[Path]:
    """Find the first ``.dnsscale.yaml``/``.dnsscale.yml`` in the search directories."""
    if search_dirs is None:
        search_dirs = [Path.home(), Path.cwd()]
    for directory in search_dirs:
        for suffix in (".yaml", ".yml"):
            candidate = directory / f"{DEFAULT_CONFIG_NAME}{suffix}"
            if candidate.is_file():
                return candidate
    return None


def _read_config_file(
    path: Optional[str], search_dirs: Optional[List[Path]]
) -> Tuple[Dict[str, Any], Optional[str]]:
    if path:
        config_path: Optional[Path] = Path(path)
        if not config_path.is_file():
            raise ConfigError(f"config file not found: {path}")
    else:
        config_path = find_config_file(search_dirs)
        if config_path is None:
            return {}, None

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"failed to read config file {config_path}: {e}") from e

    if data is None:
        return {}, str(config_path)
    if not isinstance(data, dict):
        raise ConfigError(f"config file {config_path} must contain a mapping")
    return data, str(config_path)


# =============================================================================
# Parsing Helpers
# =============================================================================

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")


def parse_duration(value: Any) -> float:
    """Parse a duration into seconds.

    Accepts numbers (seconds) and Go-style strings such as "30s", "1m",
    "1h30m" or "500ms". Empty values parse as 0.
    """
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        raise ConfigError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip().lower()
    try:
        return float(text)
    except ValueError:
        pass

    total = 0.0
    pos = 0
    for match in _DURATION_PART_RE.finditer(text):
        if match.start() != pos:
            raise ConfigError(f"invalid duration: {value!r}")
        amount = float(match.group(1))
        unit = match.group(2)
        total += amount * {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}[unit]
        pos = match.end()
    if pos != len(text) or pos == 0:
        raise ConfigError(f"invalid duration: {value!r}")
    return total


def _parse_bool(value: Any, *, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def _parse_int(value: Any, key: str) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from e


def _parse_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = list(value)
    else:
        raise ConfigError(f"expected a list, got {value!r}")
    return [str(item).strip() for item in items if str(item).strip()]


def _str(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"config section '{key}' must be a mapping")
    return value


def _set_dotted(data: Dict[str, Any], key: str, value: Any) -> None:
    parts = key.split(".")
    target = data
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[parts[-1]] = value


# =============================================================================
# Example Config
# =============================================================================

EXAMPLE_CONFIG = """\
# dnsscale configuration file
# This is an example configuration file showing all available options

tailscale:
  # Tailscale API key - get this from https://login.tailscale.com/admin/settings/keys
  api_key: "tskey-api-xxxxx"
  # Your tailnet name (e.g., example.ts.net or example@gmail.com)
  tailnet: "example@gmail.com"

dns:
  # DNS provider: route53, cloudflare, pihole or adguard
  provider: "cloudflare"
  # The domain to manage DNS records for
  domain: "example.com"
  # The zone ID from your DNS provider (not required for pihole or adguard)
  zone_id: "abc123def456"

  # Cloudflare-specific configuration (only needed if provider is cloudflare)
  cloudflare:
    # Get this from https://dash.cloudflare.com/profile/api-tokens
    api_token: "your-cloudflare-api-token"

  # Route53-specific configuration (only needed if provider is route53)
  route53:
    # AWS profile to use (optional, defaults to default profile)
    profile: "default"
    # AWS region (optional, defaults to us-east-1)
    region: "us-east-1"

  # Pi-hole-specific configuration (only needed if provider is pihole)
  pihole:
    # Pi-hole base URL (e.g., http://192.168.1.100 or https://pihole.local)
    base_url: "http://192.168.1.100"
    # Pi-hole API token (Settings > API/Web interface > Show API token)
    api_token: "your-pihole-api-token"
    # Skip TLS certificate verification (self-signed certificates)
    tls_insecure_skip_verify: false

  # AdGuard Home-specific configuration (only needed if provider is adguard)
  adguard:
    base_url: "http://adguard"
    username: "admin"
    password: "your-adguard-password"

app:
  # Number of worker threads processing DNS updates
  workers: 2
  # How often to poll the Tailscale API for changes
  poll_interval: "30s"
  # Only manage nodes with these tags (optional)
  # If empty, all nodes will be managed
  required_tags:
    - "tag:production"
    - "tag:webserver"

logging:
  # Log level: debug, info, warn, error
  level: "info"
  # Log format: json or console
  format: "console"
"""


def write_example_config(output_file: str) -> Path:
    """Write the annotated example config, creating parent directories."""
    path = Path(output_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(EXAMPLE_CONFIG, "utf-8")
    return path
