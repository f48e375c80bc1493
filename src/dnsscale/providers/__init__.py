"""DNS provider implementations and registry."""

from __future__ import annotations

import logging

from ..config import Config
from ..models import ConfigError
from .adguard import AdGuardDNSProvider
from .base import DNSProvider
from .cloudflare import CloudflareDNSProvider
from .memory import InMemoryDNSProvider
from .pihole import PiholeDNSProvider
from .route53 import Route53DNSProvider

logger = logging.getLogger(__name__)

__all__ = [
    "AdGuardDNSProvider",
    "CloudflareDNSProvider",
    "DNSProvider",
    "InMemoryDNSProvider",
    "PiholeDNSProvider",
    "Route53DNSProvider",
    "create_dns_provider",
]


def create_dns_provider(config: Config) -> DNSProvider:
    """Factory function to create the configured DNS provider."""
    dns = config.dns
    provider = dns.provider

    try:
        if provider == "route53":
            logger.info(f"Initializing Route53 DNS provider (zone_id={dns.zone_id})")
            return Route53DNSProvider(
                zone_id=dns.zone_id,
                profile=dns.route53.profile,
                region=dns.route53.region,
            )
        if provider == "cloudflare":
            logger.info(f"Initializing Cloudflare DNS provider (zone_id={dns.zone_id})")
            return CloudflareDNSProvider(api_token=dns.cloudflare.api_token, zone_id=dns.zone_id)
        if provider == "pihole":
            logger.info(
                f"Initializing Pi-hole DNS provider (base_url={dns.pihole.base_url}, "
                f"tls_insecure_skip_verify={dns.pihole.tls_insecure_skip_verify})"
            )
            return PiholeDNSProvider(
                base_url=dns.pihole.base_url,
                api_token=dns.pihole.api_token,
                tls_insecure_skip_verify=dns.pihole.tls_insecure_skip_verify,
            )
        if provider == "adguard":
            if not dns.adguard.username or not dns.adguard.password:
                logger.warning("AdGuard username/password not set. Using unauthenticated access.")
            logger.info(f"Initializing AdGuard Home DNS provider (base_url={dns.adguard.base_url})")
            return AdGuardDNSProvider(
                url=dns.adguard.base_url,
                username=dns.adguard.username,
                password=dns.adguard.password,
            )
    except ValueError as e:
        raise ConfigError(str(e)) from e

    raise ConfigError(
        f"Unsupported DNS provider: '{provider}'. "
        "Supported providers: route53, cloudflare, pihole, adguard"
    )
