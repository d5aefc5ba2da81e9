"""Virtual-host and hosts-file text for a provisioned project."""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jinja2 import BaseLoader, Environment, StrictUndefined

from .config import VhostConfig

LOCALHOST_IP = "127.0.0.1"

_env = Environment(loader=BaseLoader(), autoescape=False, undefined=StrictUndefined, trim_blocks=True, lstrip_blocks=True)

APACHE_TEMPLATE = """<VirtualHost *:{{ port }}>
    ServerName {{ server_name }}
    ServerAlias www.{{ server_name }}
    DocumentRoot "{{ document_root }}"

    <Directory "{{ document_root }}">
        Options Indexes FollowSymLinks
        AllowOverride All
        Require all granted
    </Directory>

    ErrorLog "${APACHE_LOG_DIR}/{{ project_name }}-error.log"
    CustomLog "${APACHE_LOG_DIR}/{{ project_name }}-access.log" combined
</VirtualHost>
"""

NGINX_TEMPLATE = """server {
    listen {{ port }};
    server_name {{ server_name }} www.{{ server_name }};
    root {{ document_root }};
    index index.php index.html;

    access_log /var/log/nginx/{{ project_name }}-access.log;
    error_log /var/log/nginx/{{ project_name }}-error.log;

    location / {
        try_files $uri $uri/ /index.php?$args;
    }

    location ~ \\.php$ {
        include fastcgi_params;
        fastcgi_pass {{ php_fpm_socket }};
        fastcgi_param SCRIPT_FILENAME $document_root$fastcgi_script_name;
    }
}
"""

HOSTS_TEMPLATE = """{{ ip }}    {{ server_name }}
{{ ip }}    www.{{ server_name }}"""


@dataclass(slots=True, frozen=True)
class VhostArtifacts:
    server_name: str
    vhost_text: str
    hosts_entry_text: str


def render_template(template_text: str, variables: dict[str, Any]) -> str:
    template = _env.from_string(template_text)
    return template.render(**variables)


def suggest_server_name(project_name: str, tld: str = "local") -> str:
    """Derive ``my-project.local`` style names from a project name."""
    slug = re.sub(r"[^a-z0-9]+", "-", project_name.lower()).strip("-")
    return f"{slug or 'site'}.{tld}"


def render_hosts_entry(server_name: str, ip: str = LOCALHOST_IP) -> str:
    return render_template(HOSTS_TEMPLATE, {"ip": ip, "server_name": server_name})


def render_vhost(project_name: str, document_root: Path, server_name: str, config: VhostConfig | None = None) -> str:
    config = config or VhostConfig()
    template = NGINX_TEMPLATE if config.server == "nginx" else APACHE_TEMPLATE
    return render_template(
        template,
        {
            "project_name": project_name,
            "document_root": str(Path(document_root).expanduser().resolve()),
            "server_name": server_name,
            "port": config.port,
            "php_fpm_socket": config.php_fpm_socket,
        },
    )


def build_vhost_artifacts(
    project_name: str,
    document_root: Path,
    server_name: str | None = None,
    config: VhostConfig | None = None,
) -> VhostArtifacts:
    config = config or VhostConfig()
    resolved_name = server_name or suggest_server_name(project_name, config.tld)
    return VhostArtifacts(
        server_name=resolved_name,
        vhost_text=render_vhost(project_name, document_root, resolved_name, config),
        hosts_entry_text=render_hosts_entry(resolved_name),
    )
