from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .cache import BlobCache, make_cache_key
from .content import ContentStore
from .errors import BuildError, SitePubError
from .pages import Site, render_site
from .publish import make_publisher
from .render import DEFAULT_STATIC_DIR, Templates, copy_static, write_pages
from .utils import clean_output_dir, write_nojekyll


class BuildState(str, Enum):
    IDLE = "idle"
    CACHE_RESTORING = "cache-restoring"
    RENDERING = "rendering"
    PUBLISHING = "publishing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PushEvent:
    ref: str
    sha: str = ""

    @property
    def branch(self) -> str:
        prefix = "refs/heads/"
        if self.ref.startswith(prefix):
            return self.ref[len(prefix) :]
        if self.ref.startswith("refs/"):
            return ""
        return self.ref

    @classmethod
    def from_payload(cls, payload: dict) -> "PushEvent":
        ref = payload.get("ref") if isinstance(payload, dict) else None
        if not isinstance(ref, str) or not ref:
            raise SitePubError("Push event payload has no 'ref'")
        return cls(ref=ref, sha=str(payload.get("after") or ""))

    @classmethod
    def from_file(cls, path: Path) -> "PushEvent":
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise SitePubError(f"Could not read push event {path}: {exc}") from exc
        return cls.from_payload(payload)

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "PushEvent":
        environ = os.environ if environ is None else environ
        event_path = environ.get("GITHUB_EVENT_PATH", "")
        if event_path and Path(event_path).is_file():
            return cls.from_file(Path(event_path))
        ref = environ.get("GITHUB_REF", "")
        if not ref:
            raise SitePubError("No push event: set --ref or GITHUB_REF")
        return cls(ref=ref, sha=environ.get("GITHUB_SHA", ""))


@dataclass
class BuildResult:
    state: BuildState
    history: list[BuildState] = field(default_factory=list)
    error: Optional[SitePubError] = None
    cache_hit: Optional[str] = None
    pages: int = 0

    @property
    def skipped(self) -> bool:
        return self.state is BuildState.IDLE

    @property
    def exit_code(self) -> int:
        if self.state is BuildState.FAILED:
            return self.error.exit_code if self.error is not None else 1
        return 0


def report(message: str, error: bool = False) -> None:
    print(message, file=sys.stderr if error else sys.stdout)


def build_artifact(settings, templates: Optional[Templates] = None) -> Site:
    """Render the whole site, then replace the output directory with it.

    Nothing under ``settings.output`` is touched until every document has
    parsed and rendered.
    """
    if templates is None:
        templates = Templates.load(settings.templates)
    documents = ContentStore(settings.posts, settings.include_drafts).load()
    site = render_site(documents, templates, settings)

    output_dir = Path(settings.output)
    static_dir = Path(settings.static) if settings.static else DEFAULT_STATIC_DIR
    if settings.static and not static_dir.is_dir():
        raise BuildError(f"Static directory not found: {static_dir}")
    clean_output_dir(output_dir, Path(settings.project_root))
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        if static_dir.is_dir():
            copy_static(static_dir, output_dir)
        write_pages(site.pages, output_dir)
        if settings.custom_domain:
            (output_dir / "CNAME").write_text(f"{settings.custom_domain}\n", encoding="utf-8")
        if settings.write_nojekyll:
            write_nojekyll(output_dir)
    except OSError as exc:
        raise BuildError(f"Could not write site to {output_dir}: {exc}") from exc
    return site


def build_once(settings, templates: Optional[Templates] = None) -> BuildResult:
    """Render and write the site without touching the cache or publishing."""
    try:
        site = build_artifact(settings, templates)
    except SitePubError as exc:
        report(f"Build failed: {exc}", error=True)
        return BuildResult(state=BuildState.FAILED, history=[BuildState.RENDERING, BuildState.FAILED], error=exc)
    report(f"Rendered {len(site.listing)} posts into {len(site.pages)} pages.")
    return BuildResult(
        state=BuildState.DONE,
        history=[BuildState.RENDERING, BuildState.DONE],
        pages=len(site.pages),
    )


class Pipeline:
    """Push-triggered build: restore cache, render, publish.

    Every ``run`` starts from ``IDLE``. A failure at any step ends the run
    in ``FAILED`` with no retry; a render failure never reaches the
    publisher. Without an injected publisher one is made from the settings
    once the push is known to target the main branch.
    """

    def __init__(self, settings, cache: Optional[BlobCache] = None, publisher=None, templates=None):
        self.settings = settings
        self.cache = cache
        self.publisher = publisher
        self.templates = templates
        self.state = BuildState.IDLE
        self.history: list[BuildState] = [BuildState.IDLE]

    def reset(self) -> None:
        self.state = BuildState.IDLE
        self.history = [BuildState.IDLE]

    def transition(self, state: BuildState, message: str = "") -> None:
        self.state = state
        self.history.append(state)
        line = f"[{state.value}]"
        if message:
            line = f"{line} {message}"
        report(line, error=state is BuildState.FAILED)

    def fail(self, error: SitePubError, result: BuildResult) -> BuildResult:
        self.transition(BuildState.FAILED, str(error))
        result.state = self.state
        result.error = error
        result.history = list(self.history)
        return result

    def cache_key(self) -> str:
        return make_cache_key(self.settings.cache_prefix, Path(self.settings.cache_lock_file))

    def restore_cache(self) -> Optional[str]:
        if self.cache is None or not self.cache.enabled:
            report("Cache disabled.")
            return None
        try:
            key = self.cache_key()
            hit = self.cache.restore(key, restore_prefixes=[self.settings.cache_prefix])
        except (OSError, ValueError) as exc:
            report(f"Cache restore failed, continuing without it: {exc}", error=True)
            return None
        if hit is None:
            report(f"Cache miss for {key}.")
        else:
            report(f"Cache restored from {hit}.")
        return hit

    def save_cache(self, hit: Optional[str]) -> None:
        if self.cache is None or not self.cache.enabled:
            return
        try:
            key = self.cache_key()
            if hit == key:
                return
            if self.cache.save(key):
                report(f"Cache saved as {key}.")
        except (OSError, ValueError) as exc:
            report(f"Cache save failed: {exc}", error=True)

    def run(self, event: PushEvent) -> BuildResult:
        self.reset()
        result = BuildResult(state=self.state, history=list(self.history))
        if event.branch != self.settings.main_branch:
            report(f"Ignoring push to {event.ref}; only {self.settings.main_branch} is published.")
            return result
        publisher = self.publisher if self.publisher is not None else make_publisher(self.settings)

        self.transition(BuildState.CACHE_RESTORING, f"push to {event.branch} {event.sha}".rstrip())
        result.cache_hit = self.restore_cache()

        self.transition(BuildState.RENDERING, f"posts from {self.settings.posts}")
        try:
            site = build_artifact(self.settings, self.templates)
        except SitePubError as exc:
            return self.fail(exc, result)
        result.pages = len(site.pages)

        self.transition(BuildState.PUBLISHING, f"{self.settings.output} -> {publisher.describe()}")
        try:
            publisher.publish(Path(self.settings.output))
        except SitePubError as exc:
            return self.fail(exc, result)

        self.transition(BuildState.DONE, f"{result.pages} pages published")
        self.save_cache(result.cache_hit)
        result.state = self.state
        result.history = list(self.history)
        return result
