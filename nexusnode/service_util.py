"""Shared helpers for the reverse-proxy service registry."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping

logger = logging.getLogger("nexusnode.services")

STANDARD_FIELDS = {"hostname": "HostServer", "appname": "ServiceAPI"}

_LETTER_RE = re.compile(r"[a-z0-9]+")


@dataclass
class Service:
    """A web service exposed through the reverse proxy."""

    name: str = ""
    type: str = ""
    port: str = ""
    domain: str = ""
    ip_address: str = ""
    created_at: str = ""
    status: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "type": self.type,
            "port": self.port,
            "domain": self.domain,
            "ipAddress": self.ip_address,
            "createdAt": self.created_at,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Service":
        def text(key: str) -> str:
            value = data.get(key)
            return "" if value is None else str(value)

        return cls(
            name=text("name"),
            type=text("type"),
            port=text("port"),
            domain=text("domain"),
            ip_address=text("ipAddress"),
            created_at=text("createdAt"),
            status=text("status"),
        )


def is_letter(text: str) -> bool:
    """Return True if the text is made only of lower-case letters and digits."""
    return _LETTER_RE.fullmatch(text) is not None


def read_file(path: str | os.PathLike[str]) -> bytes:
    """Return the whole content of a file."""
    return Path(path).read_bytes()


def write_file(path: str | os.PathLike[str], data: bytes | str) -> None:
    """Replace the content of a file, creating it with mode 0644."""
    if isinstance(data, str):
        data = data.encode()
    target = Path(path)
    existed = target.exists()
    target.write_bytes(data)
    if not existed:
        target.chmod(0o644)


def file_exists(path: str | os.PathLike[str]) -> bool:
    """Return True if the path exists and is not a directory."""
    target = Path(path)
    return target.exists() and not target.is_dir()


def create_json_file(path: str | os.PathLike[str]) -> None:
    """Append an empty JSON array to a file, creating it if needed."""
    with open(path, "ab") as handle:
        handle.write(b"[]")


def log_error(message: str, err: BaseException | None) -> None:
    """Log a warning for an error; does nothing when there is no error."""
    if err is not None:
        logger.warning("%s %s", message, err, extra=STANDARD_FIELDS)


def message(status: int, text: str) -> dict[str, Any]:
    """Build a status/message response body."""
    return {"status": status, "message": text}


def message_service(status: int, service: Service) -> dict[str, Any]:
    """Build a response body carrying one service."""
    return {"status": status, "message": service.to_dict()}


def message_services(status: int, services: Iterable[Service]) -> dict[str, Any]:
    """Build a response body carrying a list of services."""
    return {"status": status, "message": [s.to_dict() for s in services]}