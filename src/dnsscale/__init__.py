"""dnsscale - DNS records for Tailscale nodes."""

__version__ = "0.1.0"
