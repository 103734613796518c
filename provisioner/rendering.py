"""Rendering helpers for launcher scripts and apt source entries."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"


@dataclass
class SourceEntry:
    """One ``deb`` line pinned to a dedicated keyring."""

    url: str
    suite: str
    keyring: Path
    component: str = ""


class TemplateRenderer:
    """Renders host files from the Jinja templates shipped with the package."""

    def __init__(self, template_dir: Optional[Path] = None) -> None:
        self.template_dir = template_dir or TEMPLATE_DIR
        self.env = Environment(loader=FileSystemLoader(str(self.template_dir)))

    def render_launcher(self, war_path: Path, http_port: int = 8080) -> str:
        template = self.env.get_template("start-jenkins.sh.j2")
        return template.render(war_path=str(war_path), http_port=http_port) + "\n"

    def render_source(self, entry: SourceEntry) -> str:
        template = self.env.get_template("apt-source.list.j2")
        return (
            template.render(
                url=entry.url,
                suite=entry.suite,
                keyring=str(entry.keyring),
                component=entry.component,
            ).strip()
            + "\n"
        )

    def write_launcher(self, target: Path, war_path: Path, http_port: int = 8080) -> Path:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.render_launcher(war_path, http_port))
        target.chmod(0o755)
        return target
