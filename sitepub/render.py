from __future__ import annotations

import re
import shutil
from pathlib import Path
from typing import Mapping, Optional

from .errors import TemplateError

IMG_SRC_RE = re.compile(r'<img([^>]*?)src="([^"]+)"', re.IGNORECASE)
TAG_RE = re.compile(r"<[^>]+>")
PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")
PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_TEMPLATES_DIR = PACKAGE_DIR / "templates"
DEFAULT_STATIC_DIR = PACKAGE_DIR / "static"
REQUIRED_TEMPLATES = ("base.html",)


class Templates:
    """The fixed set of page layouts a site is rendered with."""

    def __init__(self, sources: Mapping[str, str]):
        self.sources = dict(sources)

    @classmethod
    def load(cls, templates_dir: Optional[Path] = None) -> "Templates":
        templates_dir = Path(templates_dir) if templates_dir else DEFAULT_TEMPLATES_DIR
        if not templates_dir.is_dir():
            raise TemplateError(f"Templates directory not found: {templates_dir}")
        sources = {}
        for name in REQUIRED_TEMPLATES:
            path = templates_dir / name
            if not path.is_file():
                raise TemplateError(f"Missing template: {path}")
            sources[name] = read_template(path)
        return cls(sources)

    def __getitem__(self, name: str) -> str:
        try:
            return self.sources[name]
        except KeyError:
            raise TemplateError(f"Unknown template: {name}") from None


def fix_relative_img_src(html_text: str, root: str) -> str:
    def repl(match: re.Match) -> str:
        attrs = match.group(1)
        src = match.group(2)
        if src.startswith(("http://", "https://", "data:", "#", "/", "./", "../")):
            return match.group(0)
        src = src.lstrip("/")
        return f'<img{attrs}src="{root}/{src}"'

    return IMG_SRC_RE.sub(repl, html_text)


def strip_tags(html_text: str) -> str:
    return TAG_RE.sub("", html_text)


def render_template(template: str, **context: str) -> str:
    def repl(match: re.Match) -> str:
        return context.get(match.group(1), match.group(0))

    return PLACEHOLDER_RE.sub(repl, template)


def read_template(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def write_pages(pages: Mapping[str, bytes], output_dir: Path) -> None:
    for rel_path in sorted(pages):
        write_bytes(output_dir / rel_path, pages[rel_path])


def copy_static(static_dir: Path, output_dir: Path) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    for item in sorted(static_dir.iterdir()):
        dest = output_dir / item.name
        if item.is_dir():
            if dest.exists():
                shutil.rmtree(dest)
            shutil.copytree(item, dest)
        else:
            shutil.copy2(item, dest)
