#!/usr/bin/env python3
"""dnsscale - DNS records for Tailscale nodes

Polls the Tailscale API for the devices of a tailnet and keeps one A/AAAA
record set per device in a DNS provider, named ``<device>.<domain>``. Each
record name also gets a TXT ownership marker so records are only ever deleted
when dnsscale created them.

Supported DNS Providers:
    - route53: AWS Route53 hosted zone
    - cloudflare: Cloudflare zone (records are never proxied)
    - pihole: Pi-hole local DNS (A/AAAA only, no ownership markers)
    - adguard: AdGuard Home DNS rewrites (A/AAAA only, no ownership markers)

Configuration is read from ``--config`` or ``~/.dnsscale.yaml`` /
``./.dnsscale.yaml``, then overridden by environment variables and flags.
Run ``dnsscale config example`` for an annotated config file.

Environment variables:
    TAILSCALE_API_KEY, TAILSCALE_TAILNET
    DNS_PROVIDER, DNS_DOMAIN, DNS_ZONE_ID
    CLOUDFLARE_API_TOKEN
    AWS_PROFILE, AWS_REGION
    PIHOLE_BASE_URL, PIHOLE_API_TOKEN
    ADGUARD_URL, ADGUARD_USERNAME, ADGUARD_PASSWORD
    LOG_LEVEL, LOG_FORMAT
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
import time
from typing import Any, Dict, List, Optional

from . import __version__
from .config import Config, load_config, parse_duration, write_example_config
from .models import ConfigError
from .providers import create_dns_provider
from .reconciler import DNSReconciler
from .tailscale import TailscaleClient

logger = logging.getLogger(__name__)

# =============================================================================
# Logging Setup
# =============================================================================

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class JSONFormatter(logging.Formatter):
    """One JSON object per line with UTC timestamps."""

    converter = time.gmtime

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%SZ")

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(level: str = "info", fmt: str = "console") -> None:
    """Configure the root logger. ``fmt`` is "console" or "json"."""
    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%Y-%m-%d %H:%M:%S")
        )

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(LOG_LEVELS.get(level.lower(), logging.INFO))


# =============================================================================
# Argument Parsing
# =============================================================================

# CLI flag dest -> dotted config key
FLAG_BINDINGS = {
    "tailscale_api_key": "tailscale.api_key",
    "tailscale_tailnet": "tailscale.tailnet",
    "dns_provider": "dns.provider",
    "dns_domain": "dns.domain",
    "dns_zone_id": "dns.zone_id",
    "cloudflare_api_token": "dns.cloudflare.api_token",
    "route53_profile": "dns.route53.profile",
    "route53_region": "dns.route53.region",
    "pihole_base_url": "dns.pihole.base_url",
    "pihole_api_token": "dns.pihole.api_token",
    "adguard_url": "dns.adguard.base_url",
    "adguard_username": "dns.adguard.username",
    "adguard_password": "dns.adguard.password",
    "workers": "app.workers",
    "poll_interval": "app.poll_interval",
    "required_tags": "app.required_tags",
    "log_level": "logging.level",
    "log_format": "logging.format",
}


def _duration_arg(value: str) -> float:
    try:
        return parse_duration(value)
    except ConfigError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dnsscale",
        description="Automatically manage DNS records for Tailscale nodes.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config", help="Config file (default is $HOME/.dnsscale.yaml or ./.dnsscale.yaml)"
    )

    group = parser.add_argument_group("tailscale")
    group.add_argument("--tailscale-api-key", help="Tailscale API key")
    group.add_argument("--tailscale-tailnet", help="Tailscale tailnet name")

    group = parser.add_argument_group("dns")
    group.add_argument("--dns-provider", help="DNS provider (route53, cloudflare, pihole, adguard)")
    group.add_argument("--dns-domain", help="DNS domain to manage")
    group.add_argument("--dns-zone-id", help="DNS zone ID (not required for pihole or adguard)")
    group.add_argument("--cloudflare-api-token", help="Cloudflare API token")
    group.add_argument("--route53-profile", help="AWS profile to use")
    group.add_argument("--route53-region", help="AWS region")
    group.add_argument("--pihole-base-url", help="Pi-hole base URL (e.g., http://192.168.1.100)")
    group.add_argument("--pihole-api-token", help="Pi-hole API token")
    group.add_argument("--adguard-url", help="AdGuard Home base URL")
    group.add_argument("--adguard-username", help="AdGuard Home username")
    group.add_argument("--adguard-password", help="AdGuard Home password")

    group = parser.add_argument_group("app")
    group.add_argument("--workers", type=int, help="Number of worker threads (default 2)")
    group.add_argument(
        "--poll-interval",
        type=_duration_arg,
        help="Interval to poll the Tailscale API (e.g., 30s, 1m)",
    )
    group.add_argument(
        "--required-tags",
        help="Comma-separated tags; only nodes carrying one of them are managed",
    )
    group.add_argument("--log-level", help="Log level (debug, info, warn, error)")
    group.add_argument("--log-format", help="Log format (json or console)")

    subparsers = parser.add_subparsers(dest="command")
    config_parser = subparsers.add_parser("config", help="Configuration management commands")
    config_sub = config_parser.add_subparsers(dest="config_command", required=True)
    example_parser = config_sub.add_parser(
        "example", help="Generate an example configuration file"
    )
    example_parser.add_argument(
        "-o",
        "--output",
        default="dnsscale.example.yaml",
        help="Output file for the example configuration",
    )

    return parser


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for dest, key in FLAG_BINDINGS.items():
        value = getattr(args, dest, None)
        if value is not None:
            overrides[key] = value
    return overrides


# =============================================================================
# Main
# =============================================================================


def run(config: Config, stop_event: Optional[threading.Event] = None) -> int:
    """Build the reconciler from ``config`` and run it until ``stop_event`` is set."""
    logger.info(
        f"Starting dnsscale {__version__} (provider={config.dns.provider}, "
        f"domain={config.dns.domain}, workers={config.app.workers}, "
        f"poll_interval={config.app.poll_interval}s, log_level={config.logging.level})"
    )
    if config.source_path:
        logger.info(f"Using config file: {config.source_path}")

    try:
        dns_provider = create_dns_provider(config)
    except Exception as e:
        logger.error(f"Failed to initialize DNS provider: {e}")
        return 1

    for tag in config.app.required_tags:
        logger.info(f"Added required tag filter: {tag}")

    reconciler = DNSReconciler(
        source=TailscaleClient(config.tailscale.api_key, config.tailscale.tailnet),
        dns_provider=dns_provider,
        domain=config.dns.domain,
        poll_interval=config.app.poll_interval,
        required_tags=config.app.required_tags,
    )

    stop_event = stop_event or threading.Event()
    reconciler.run(stop_event, workers=config.app.workers)
    return 0


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _handle(signum, frame):
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        stop_event.set()

    signal.signal(signal.SIGTERM, _handle)
    signal.signal(signal.SIGINT, _handle)


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "config":
        path = write_example_config(args.output)
        print(f"Example configuration written to: {path}")
        return

    try:
        config = load_config(args.config, overrides_from_args(args))
    except ConfigError as e:
        configure_logging()
        logger.error(f"Configuration validation error: {e}")
        sys.exit(1)

    configure_logging(config.logging.level, config.logging.format)

    stop_event = threading.Event()
    _install_signal_handlers(stop_event)

    try:
        code = run(config, stop_event)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
        code = 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
