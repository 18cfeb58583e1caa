from __future__ import annotations

import html
import json
import os
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

import markdown
import yaml

from .content import parse_list


def load_config(path: Path) -> dict:
    if not path.exists():
        return {}
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix == ".toml":
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            print(f"Invalid TOML in config file {path}: {exc}", file=sys.stderr)
            sys.exit(1)
        return data
    if suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            print(f"Invalid YAML in config file {path}: {exc}", file=sys.stderr)
            sys.exit(1)
        if data is None:
            return {}
        if not isinstance(data, dict):
            print(f"YAML config must be a mapping: {path}", file=sys.stderr)
            sys.exit(1)
        return data
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        print(f"Invalid JSON in config file {path}: {exc}", file=sys.stderr)
        sys.exit(1)
    if not isinstance(data, dict):
        print(f"JSON config must be an object: {path}", file=sys.stderr)
        sys.exit(1)
    return data


def resolve_about_html(args: object) -> str:
    html_snippet = (getattr(args, "about_html", "") or "").strip()
    if html_snippet:
        return html_snippet

    file_value = (getattr(args, "about_file", "") or "").strip()
    if file_value:
        path = Path(file_value)
        if not path.is_absolute():
            config_path = Path(getattr(args, "config", "site.toml")).resolve()
            path = config_path.parent / path
        if not path.exists():
            print(f"About file not found: {path}", file=sys.stderr)
        else:
            text = path.read_text(encoding="utf-8")
            suffix = path.suffix.lower()
            if suffix in {".html", ".htm"}:
                return text
            if suffix == ".md":
                md = markdown.Markdown(extensions=["tables"])
                return md.convert(text)
            escaped = html.escape(text).replace("\n", "<br>")
            return f"<p>{escaped}</p>"

    text_value = (getattr(args, "about_text", "") or "").strip()
    if text_value:
        escaped = html.escape(text_value).replace("\n", "<br>")
        return f"<p>{escaped}</p>"

    site_description = getattr(args, "site_description", "")
    return f"<p>{html.escape(site_description)}</p>"


def as_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if str(item).strip()]
    return parse_list(str(value))


@dataclass
class Settings:
    """Everything a build needs, resolved once and passed in explicitly."""

    posts: Path = Path("_posts")
    static: Path | None = None
    templates: Path | None = None
    output: Path = Path("_site")
    project_root: Path = field(default_factory=Path.cwd)
    site_name: str = "Engineering Notes"
    site_description: str = ""
    site_url: str = ""
    custom_domain: str = ""
    about_html: str = ""
    write_nojekyll: bool = True
    enable_404: bool = True
    include_drafts: bool = False
    feed_limit: int = 20
    toc_depth: str = "2-4"
    highlight_style: str = "default"
    main_branch: str = "main"
    cache_dir: Path = Path(".sitepub-cache")
    cache_lock_file: Path = Path("requirements.txt")
    cache_paths: list[Path] = field(default_factory=list)
    cache_prefix: str = "sitepub-"
    publish_target: str = "directory"
    destination: str = ""
    repository: str = ""
    publish_branch: str = "gh-pages"
    commit_message: str = "Deploy site"
    token: str = field(default="", repr=False)

    @classmethod
    def from_args(cls, args: object, environ: dict | None = None) -> "Settings":
        environ = os.environ if environ is None else environ
        token_env = getattr(args, "token_env", "GITHUB_TOKEN") or "GITHUB_TOKEN"
        static = (getattr(args, "static", "") or "").strip()
        templates = (getattr(args, "templates", "") or "").strip()
        repository = (getattr(args, "repository", "") or "").strip() or environ.get("GITHUB_REPOSITORY", "")
        return cls(
            posts=Path(args.posts),
            static=Path(static) if static else None,
            templates=Path(templates) if templates else None,
            output=Path(args.output),
            project_root=Path.cwd(),
            site_name=args.site_name,
            site_description=args.site_description,
            site_url=(args.site_url or "").strip(),
            custom_domain=(args.custom_domain or "").strip(),
            about_html=resolve_about_html(args),
            write_nojekyll=args.write_nojekyll,
            enable_404=args.enable_404,
            include_drafts=args.drafts,
            feed_limit=args.feed_limit,
            toc_depth=args.toc_depth,
            highlight_style=args.highlight_style,
            main_branch=args.main_branch,
            cache_dir=Path(args.cache_dir),
            cache_lock_file=Path(args.cache_lock_file),
            cache_paths=[Path(item) for item in as_list(args.cache_paths)],
            cache_prefix=args.cache_prefix,
            publish_target=args.publish_target,
            destination=(args.destination or "").strip(),
            repository=repository,
            publish_branch=args.publish_branch,
            commit_message=args.commit_message,
            token=environ.get(token_env, ""),
        )
