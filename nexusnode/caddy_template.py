"""Rendering of reverse-proxy site blocks for services."""

from __future__ import annotations

import os
from pathlib import Path

from nexusnode.service_util import Service

TLS_EMAIL = "admin@example.com"

_CADDY_TEMPLATE = """
# {name}, {ip}, {port}, {created}
{domain} {{
\treverse_proxy {ip}:{port}
\tlog {{
\t\toutput file /var/log/caddy/{domain}.access.log {{
\t\t\troll_size 3MiB
\t\t\troll_keep 5
\t\t\troll_keep_for 48h
\t\t}}
\t\tformat console
\t}}
\tencode gzip zstd

\ttls {email} {{
\t\tprotocols tls1.2 tls1.3
\t}}
}}
"""

_ESCAPES = {
    "\0": "\ufffd",
    '"': "&#34;",
    "&": "&amp;",
    "'": "&#39;",
    "+": "&#43;",
    "<": "&lt;",
    ">": "&gt;",
}


def _escape(value: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in value)


def render_caddy_config(service: Service) -> str:
    """Return the site block for a service, with values HTML-escaped."""
    return _CADDY_TEMPLATE.format(
        name=_escape(service.name),
        ip=_escape(service.ip_address),
        port=_escape(service.port),
        created=_escape(service.created_at),
        domain=_escape(service.domain),
        email=TLS_EMAIL,
    )


def write_caddy_config(
    service: Service,
    conf_dir: str | os.PathLike[str] | None = None,
    interface_name: str | None = None,
) -> str:
    """Render a service's site block and append it to the proxy config file.

    The directory and file name default to CADDY_CONF_DIR and
    CADDY_INTERFACE_NAME from the environment.
    """
    rendered = render_caddy_config(service)
    if conf_dir is None:
        conf_dir = os.environ.get("CADDY_CONF_DIR", "")
    if not str(conf_dir):
        raise RuntimeError("CADDY_CONF_DIR environment variable is not set")
    if interface_name is None:
        interface_name = os.environ.get("CADDY_INTERFACE_NAME", "")
    directory = Path(conf_dir)
    try:
        directory.mkdir(mode=0o755, parents=True, exist_ok=True)
    except OSError as exc:
        raise OSError(f"error creating directory {directory}: {exc}") from exc
    target = directory / interface_name
    try:
        with open(target, "a", encoding="utf-8") as handle:
            handle.write(rendered)
    except OSError as exc:
        raise OSError(f"error writing file {target}: {exc}") from exc
    return rendered