from __future__ import annotations

from pathlib import Path

import pytest

from wp_automation.config import VhostConfig
from wp_automation.vhost import build_vhost_artifacts, render_hosts_entry, suggest_server_name


@pytest.mark.parametrize(
    ("project_name", "expected"),
    [
        ("Demo", "demo.local"),
        ("My Cool__Site", "my-cool-site.local"),
        ("--shop--", "shop.local"),
        ("!!!", "site.local"),
    ],
)
def test_suggest_server_name(project_name: str, expected: str) -> None:
    assert suggest_server_name(project_name) == expected


def test_suggest_server_name_custom_tld() -> None:
    assert suggest_server_name("Demo", tld="test") == "demo.test"


def test_hosts_entry_includes_www_alias() -> None:
    assert render_hosts_entry("demo.local") == "127.0.0.1    demo.local\n127.0.0.1    www.demo.local"


def test_apache_vhost_uses_absolute_document_root(tmp_path: Path) -> None:
    artifacts = build_vhost_artifacts("demo", tmp_path / "demo")

    assert artifacts.server_name == "demo.local"
    assert "<VirtualHost *:80>" in artifacts.vhost_text
    assert f'DocumentRoot "{(tmp_path / "demo").resolve()}"' in artifacts.vhost_text
    assert "ServerAlias www.demo.local" in artifacts.vhost_text
    assert "${APACHE_LOG_DIR}/demo-error.log" in artifacts.vhost_text
    assert "www.demo.local" in artifacts.hosts_entry_text


def test_nginx_vhost_block(tmp_path: Path) -> None:
    config = VhostConfig(server="nginx", port=8080, php_fpm_socket="127.0.0.1:9000")

    artifacts = build_vhost_artifacts("demo", tmp_path / "demo", "blog.local", config)

    assert artifacts.server_name == "blog.local"
    assert "listen 8080;" in artifacts.vhost_text
    assert "server_name blog.local www.blog.local;" in artifacts.vhost_text
    assert "fastcgi_pass 127.0.0.1:9000;" in artifacts.vhost_text
    assert "location ~ \\.php$ {" in artifacts.vhost_text
