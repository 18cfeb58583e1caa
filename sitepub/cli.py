from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

from .cache import BlobCache
from .config import Settings, load_config
from .errors import SitePubError
from .pipeline import Pipeline, PushEvent, build_once
from .utils import parse_bool, parse_int

FEED_LIMIT = 20


def build_parser(config: dict, config_path: str) -> argparse.ArgumentParser:
    def cfg_value(key: str, default: object) -> object:
        value = config.get(key)
        return default if value is None else value

    def cfg_str(key: str, default: str) -> str:
        value = cfg_value(key, default)
        return default if value is None else str(value)

    def cfg_bool(key: str, default: bool) -> bool:
        value = cfg_value(key, default)
        return parse_bool(value) if value is not None else default

    def cfg_int(key: str, default: int) -> int:
        value = cfg_value(key, default)
        return parse_int(value, default)

    def cfg_list(key: str) -> str:
        value = config.get(key)
        if isinstance(value, (list, tuple)):
            return ",".join(str(item) for item in value)
        return "" if value is None else str(value)

    parser = argparse.ArgumentParser(description="Build and publish a Markdown blog as a static site.")
    parser.add_argument("--config", default=config_path, help="Path to site config file (TOML/YAML/JSON).")
    parser.add_argument("--posts", default=cfg_str("posts", "_posts"), help="Directory containing Markdown posts.")
    parser.add_argument(
        "--static", default=cfg_str("static", ""), help="Directory of static assets (default: bundled theme)."
    )
    parser.add_argument(
        "--templates", default=cfg_str("templates", ""), help="Directory holding base.html (default: bundled)."
    )
    parser.add_argument("--output", default=cfg_str("output", "_site"), help="Output directory for the site.")
    parser.add_argument("--site-name", default=cfg_str("site_name", "Engineering Notes"), help="Site title.")
    parser.add_argument(
        "--site-description",
        default=cfg_str("site_description", "Notes from building and testing things."),
        help="Site description.",
    )
    parser.add_argument(
        "--site-url",
        default=cfg_str("site_url", ""),
        help="Public site URL used for the Atom feed and sitemap.",
    )
    parser.add_argument(
        "--custom-domain",
        default=cfg_str("custom_domain", ""),
        help="Custom domain to write into CNAME.",
    )
    parser.add_argument("--about-text", default=cfg_str("about_text", ""), help="Text for the About panel.")
    parser.add_argument("--about-html", default=cfg_str("about_html", ""), help="HTML for the About panel.")
    parser.add_argument("--about-file", default=cfg_str("about_file", ""), help="File used for the About panel.")
    parser.add_argument(
        "--feed-limit",
        default=cfg_int("feed_limit", FEED_LIMIT),
        type=int,
        help="Maximum number of posts in the Atom feed.",
    )
    parser.add_argument(
        "--toc-depth",
        default=cfg_str("toc_depth", "2-4"),
        help="Heading depth range for TOC (e.g. 2-4).",
    )
    parser.add_argument(
        "--highlight-style",
        default=cfg_str("highlight_style", "default"),
        help="Pygments style used for css/highlight.css.",
    )
    parser.add_argument(
        "--drafts",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("drafts", False),
        help="Include posts marked draft or unpublished.",
    )
    parser.add_argument(
        "--enable-404",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("enable_404", True),
        help="Generate 404.html.",
    )
    parser.add_argument(
        "--write-nojekyll",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("write_nojekyll", True),
        help="Write .nojekyll in the output directory.",
    )
    parser.add_argument(
        "--deploy",
        action="store_true",
        help="Run the push pipeline: restore cache, build, publish.",
    )
    parser.add_argument("--ref", default="", help="Pushed ref (default: GITHUB_REF or the event file).")
    parser.add_argument("--event-file", default="", help="Push webhook payload JSON.")
    parser.add_argument(
        "--main-branch", default=cfg_str("main_branch", "main"), help="Only pushes to this branch are published."
    )
    parser.add_argument(
        "--cache-dir", default=cfg_str("cache_dir", ".sitepub-cache"), help="Directory holding cache entries."
    )
    parser.add_argument(
        "--cache-lock-file",
        default=cfg_str("cache_lock_file", "requirements.txt"),
        help="Dependency lock file whose hash keys the cache.",
    )
    parser.add_argument(
        "--cache-paths", default=cfg_list("cache_paths"), help="Comma separated paths to cache between builds."
    )
    parser.add_argument("--cache-prefix", default=cfg_str("cache_prefix", "sitepub-"), help="Cache key prefix.")
    parser.add_argument(
        "--publish-target",
        default=cfg_str("publish_target", "directory"),
        choices=["directory", "github-pages"],
        help="Where the built site is published.",
    )
    parser.add_argument(
        "--destination", default=cfg_str("destination", ""), help="Destination directory for 'directory'."
    )
    parser.add_argument(
        "--repository",
        default=cfg_str("repository", ""),
        help="owner/repo or git URL for 'github-pages' (default: GITHUB_REPOSITORY).",
    )
    parser.add_argument(
        "--publish-branch", default=cfg_str("publish_branch", "gh-pages"), help="Branch served by Pages."
    )
    parser.add_argument(
        "--commit-message", default=cfg_str("commit_message", "Deploy site"), help="Deploy commit message."
    )
    parser.add_argument(
        "--token-env",
        default=cfg_str("token_env", "GITHUB_TOKEN"),
        help="Environment variable holding the publish token.",
    )
    return parser


def resolve_event(args: argparse.Namespace) -> PushEvent:
    if args.ref:
        return PushEvent(ref=args.ref)
    if args.event_file:
        return PushEvent.from_file(Path(args.event_file))
    return PushEvent.from_env()


def run(argv: list[str] | None = None) -> int:
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument(
        "--config",
        default="site.toml",
        help="Path to site config file (TOML/YAML/JSON).",
    )
    pre_args, _ = pre_parser.parse_known_args(argv)
    config = load_config(Path(pre_args.config))
    args = build_parser(config, pre_args.config).parse_args(argv)

    start = time.perf_counter()
    try:
        settings = Settings.from_args(args)
        if args.deploy:
            cache = BlobCache(Path(settings.cache_dir), settings.cache_paths)
            pipeline = Pipeline(settings, cache=cache)
            result = pipeline.run(resolve_event(args))
        else:
            result = build_once(settings)
    except SitePubError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return exc.exit_code
    elapsed = time.perf_counter() - start
    if result.exit_code == 0 and not result.skipped:
        print(f"Build completed in {elapsed:.2f}s.")
        print(f"Site generated in: {settings.output}")
    return result.exit_code


def main() -> None:
    sys.exit(run())
