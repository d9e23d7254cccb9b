"""Registry of reverse-proxied services kept in caddy.json."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from nexusnode.caddy_template import write_caddy_config
from nexusnode.service_util import Service, file_exists, log_error, write_file

logger = logging.getLogger("nexusnode.services")

_REGISTRY_NAME = "caddy.json"


class ServiceValidationError(ValueError):
    """A service cannot be registered; the message explains why."""


@dataclass
class ServicesList:
    """The list of registered services."""

    services: list[Service] = field(default_factory=list)

    def to_json(self) -> str:
        return json.dumps(
            {"services": [s.to_dict() for s in self.services]}, indent=3
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> "ServicesList":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"failed to parse JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError("failed to parse JSON: expected an object")
        items = data.get("services") or []
        return cls([Service.from_dict(item) for item in items])


def _conf_dir() -> Path:
    conf = os.environ.get("CADDY_CONF_DIR", "")
    if not conf:
        raise RuntimeError("CADDY_CONF_DIR environment variable is not set")
    return Path(conf)


def validate_service(name: str, port: int, ip_address: str) -> None:
    """Raise ServiceValidationError if a service cannot be registered."""
    if not name:
        raise ServiceValidationError("Services Name is required")
    if not 4 <= len(name.encode()) <= 50:
        raise ServiceValidationError("Services Name field must be between 4-12 chars")
    for service in read_services().services:
        if service.name == name:
            raise ServiceValidationError("Service Already exists")
        if service.ip_address == ip_address and service.port == str(port):
            raise ServiceValidationError(
                "Port and IP address combination already in use"
            )


def read_services() -> ServicesList:
    """Load all services, creating an empty registry if none exists."""
    conf = _conf_dir()
    try:
        conf.mkdir(mode=0o755, parents=True, exist_ok=True)
    except OSError as exc:
        raise OSError(f"failed to create directory {conf}: {exc}") from exc
    path = conf / _REGISTRY_NAME
    if not path.exists():
        path.write_text('{"services": []}', encoding="utf-8")
    raw = path.read_bytes()
    if not raw:
        return ServicesList()
    return ServicesList.from_json(raw)


def read_service(name: str) -> Service | None:
    """Return the named service, or None if it is not registered."""
    for service in read_services().services:
        if service.name == name:
            return Service(
                name=service.name,
                port=service.port,
                created_at=service.created_at,
                domain=service.domain,
                status=service.status,
            )
    return None


def _store(services: ServicesList) -> None:
    try:
        save_to_file(services.to_json())
    except OSError as exc:
        log_error("failed to save/update data in config files: ", exc)
        raise
    update_caddy_config()


def add_service(service: Service) -> None:
    """Register a service and regenerate the proxy configuration."""
    services = read_services()
    services.services.append(service)
    _store(services)


def delete_service(name: str) -> None:
    """Remove every service with this name and regenerate the configuration."""
    services = read_services()
    remaining = ServicesList([s for s in services.services if s.name != name])
    _store(remaining)


def update_caddy_config() -> None:
    """Rewrite the proxy configuration file from the registered services."""
    services = read_services()
    path = _conf_dir() / os.environ.get("CADDY_INTERFACE_NAME", "")
    if file_exists(path):
        path.unlink()
    for service in services.services:
        try:
            write_caddy_config(service)
        except OSError as exc:
            log_error("Caddy update error: ", exc)
            raise


def save_to_file(data: bytes | str) -> None:
    """Write the registry to CADDY_CONF_DIR and to SERVICE_CONF_DIR under home."""
    caddy_path = Path(os.environ.get("CADDY_CONF_DIR", "")) / _REGISTRY_NAME
    logger.debug("caddyConfigPath: %s", caddy_path)
    write_file(caddy_path, data)

    service_dir = Path.home() / os.environ.get("SERVICE_CONF_DIR", "")
    service_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
    service_path = service_dir / _REGISTRY_NAME
    logger.debug("serviceConfigPath: %s", service_path)
    write_file(service_path, data)


def add_services_direct(domain: str, agent_name: str, port: int) -> Service:
    """Register a local service as a subdomain of the given domain."""
    ip_address = "127.0.0.1"
    validate_service(agent_name, port, ip_address)
    service = Service(
        name=agent_name,
        type=os.environ.get("NODE_TYPE", ""),
        port=str(port),
        domain=f"{agent_name}.{domain}",
        ip_address=ip_address,
        created_at=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
    )
    add_service(service)
    return service