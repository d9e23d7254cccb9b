import pytest

from nexusnode.caddy_template import render_caddy_config, write_caddy_config
from nexusnode.service_util import Service


def _service(name="alpha", domain="alpha.example.com"):
    return Service(
        name=name,
        port="8080",
        domain=domain,
        ip_address="127.0.0.1",
        created_at="2024-01-01T00:00:00Z",
    )


def test_render_contains_proxy_and_log():
    text = render_caddy_config(_service())
    assert "reverse_proxy 127.0.0.1:8080" in text
    assert "output file /var/log/caddy/alpha.example.com.access.log {" in text
    assert "alpha.example.com {" in text
    assert "\tencode gzip zstd" in text


def test_render_header_line():
    text = render_caddy_config(_service())
    assert text.splitlines()[1] == "# alpha, 127.0.0.1, 8080, 2024-01-01T00:00:00Z"


def test_render_escapes_values():
    text = render_caddy_config(_service(name="a&b<c>"))
    assert "a&amp;b&lt;c&gt;" in text
    assert "a&b" not in text


def test_write_appends(tmp_path):
    conf = tmp_path / "caddy"
    first = write_caddy_config(_service(), conf, "Caddyfile")
    second = write_caddy_config(_service("beta", "beta.example.com"), conf, "Caddyfile")
    content = (conf / "Caddyfile").read_text()
    assert content == first + second


def test_write_uses_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("CADDY_CONF_DIR", str(tmp_path))
    monkeypatch.setenv("CADDY_INTERFACE_NAME", "site.conf")
    rendered = write_caddy_config(_service())
    assert (tmp_path / "site.conf").read_text() == rendered


def test_write_without_directory_raises(monkeypatch):
    monkeypatch.delenv("CADDY_CONF_DIR", raising=False)
    with pytest.raises(RuntimeError, match="CADDY_CONF_DIR"):
        write_caddy_config(_service())