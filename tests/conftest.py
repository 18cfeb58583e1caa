from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest

from sitepub.config import Settings
from sitepub.content import Document


def write_post(
    posts_dir: Path,
    name: str,
    title: str | None = "A post",
    tags: str = "",
    body: str = "Some text.",
    extra: str = "",
) -> Path:
    posts_dir.mkdir(parents=True, exist_ok=True)
    lines = ["---"]
    if title is not None:
        lines.append(f"title: {title}")
    if tags:
        lines.append(f"tags: {tags}")
    if extra:
        lines.append(extra)
    lines.append("---")
    lines.append("")
    lines.append(body)
    path = posts_dir / name
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def make_doc(slug: str, date: str, tags: tuple = (), body: str = "Body text.", title: str = "") -> Document:
    return Document(
        slug=slug,
        title=title or slug.replace("-", " ").title(),
        date=dt.date.fromisoformat(date),
        body=body,
        tags=tuple(tags),
    )


@pytest.fixture
def posts_dir(tmp_path):
    return tmp_path / "_posts"


@pytest.fixture
def settings(tmp_path, posts_dir):
    return Settings(
        posts=posts_dir,
        output=tmp_path / "_site",
        project_root=tmp_path,
        site_name="Test Notes",
        site_description="Testing the pipeline.",
        cache_dir=tmp_path / "cache",
        cache_lock_file=tmp_path / "requirements.txt",
        destination=str(tmp_path / "www"),
    )
