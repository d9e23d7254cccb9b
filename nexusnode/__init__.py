"""Node service for Caddy reverse-proxy services, Docker agents and wallet login challenges."""

__version__ = "0.1.0"