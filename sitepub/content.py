from __future__ import annotations

import datetime as dt
import html as html_lib
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

import yaml

from .errors import BuildError, MalformedMarkupError, MalformedMetadataError
from .utils import parse_bool

POST_FILE_RE = re.compile(r"^(?P<date>\d{4}-\d{2}-\d{2})-(?P<name>.+)$")
POST_SUFFIXES = (".md", ".markdown")
LIST_MARKER_RE = re.compile(r"^(?P<indent>[ \t]*)(?:[-+*]|\d+[.)])\s+")
FENCE_RE = re.compile(r"^(?P<indent>[ ]{0,3})(?P<marker>`{3,}|~{3,})[ \t]*(?P<info>.*)$")
DOUBLE_QUOTE_RE = re.compile(r"^(?P<indent>[ \t]*)>>(?!>)(?P<rest>.*)$")
CJK_RE = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]")
WORD_RE = re.compile(r"[A-Za-z0-9]+(?:'[A-Za-z0-9]+)?")
LIST_KEYS = {"tags", "categories"}


@dataclass(frozen=True)
class Document:
    slug: str
    title: str
    date: dt.date
    body: str
    excerpt: str = ""
    tags: tuple[str, ...] = ()
    source: Optional[Path] = None
    draft: bool = False
    meta: dict = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class FenceBlock:
    start: int
    end: int
    indent: str
    lang: str
    code: str


def slugify(text: str) -> str:
    text = text.lower()
    text = re.sub(r"[^\w]+", "-", text, flags=re.UNICODE)
    text = text.strip("-_").replace("_", "-")
    return text or "post"


def parse_list(value: str) -> list[str]:
    value = value.strip()
    if value.startswith("[") and value.endswith("]"):
        inner = value[1:-1]
        items = [item.strip().strip("'\"") for item in inner.split(",")]
    else:
        items = [item.strip() for item in value.split(",")]
    return [item for item in items if item]


def parse_front_matter(text: str, path: Optional[Path] = None) -> tuple[dict, str]:
    meta, body, _ = split_front_matter(text, path)
    return meta, body


def normalize_meta_value(key: str, value: object) -> object:
    if key in LIST_KEYS:
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(item).strip() for item in value if item is not None and str(item).strip()]
        return parse_list(str(value))
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, (int, float, str)):
        return str(value)
    return value


def split_front_matter(text: str, path: Optional[Path] = None) -> tuple[dict, str, int]:
    """Return metadata, body and the 1-based file line the body starts on."""
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines()
    if not lines or lines[0].strip() != "---":
        raise MalformedMetadataError("missing front matter block", path)

    end = None
    for i in range(1, len(lines)):
        if lines[i].strip() == "---":
            end = i
            break
    if end is None:
        raise MalformedMetadataError("front matter block is not closed with '---'", path)

    try:
        data = yaml.safe_load("\n".join(lines[1:end]))
    except yaml.YAMLError as exc:
        problem = getattr(exc, "problem", None) or exc
        raise MalformedMetadataError(f"invalid front matter: {problem}", path) from None
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedMetadataError("front matter must be a mapping of keys to values", path)

    meta = {}
    for key, value in data.items():
        key = str(key).strip().lower()
        meta[key] = normalize_meta_value(key, value)
    body = "\n".join(lines[end + 1 :])
    return meta, body, end + 2


def find_fences(text: str, path: Optional[Path] = None, first_line: int = 1) -> list[FenceBlock]:
    """Locate fenced code blocks; an unclosed fence is a markup error."""
    lines = text.split("\n")
    blocks = []
    i = 0
    while i < len(lines):
        match = FENCE_RE.match(lines[i])
        if not match:
            i += 1
            continue
        marker = match.group("marker")
        info = match.group("info").strip()
        if marker[0] == "`" and "`" in info:
            i += 1
            continue
        indent = match.group("indent")
        lang = info.split()[0].lstrip(".").strip("{}") if info else ""
        close_re = re.compile(rf"^[ ]{{0,3}}{re.escape(marker[0])}{{{len(marker)},}}[ \t]*$")
        end = None
        for j in range(i + 1, len(lines)):
            if close_re.match(lines[j]):
                end = j
                break
        if end is None:
            raise MalformedMarkupError(f"unterminated code fence {marker}{info}", path, i + first_line)
        code_lines = []
        for line in lines[i + 1 : end]:
            if indent and line.startswith(indent):
                line = line[len(indent) :]
            code_lines.append(line)
        blocks.append(FenceBlock(i, end, indent, lang, "\n".join(code_lines)))
        i = end + 1
    return blocks


def parse_date(value: str, path: Optional[Path] = None) -> dt.date:
    value = value.strip()
    try:
        return dt.date.fromisoformat(value[:10])
    except ValueError:
        raise MalformedMetadataError(f"invalid date {value!r}", path) from None


def get_tags(meta: dict) -> tuple[str, ...]:
    tags: list[str] = []
    for key in ("tags", "categories"):
        for tag in meta.get(key) or []:
            if tag not in tags:
                tags.append(tag)
    return tuple(tags)


def parse_document(path: Path, text: Optional[str] = None) -> Document:
    match = POST_FILE_RE.match(path.stem)
    if not match:
        raise MalformedMetadataError("file name must look like YYYY-MM-DD-name.md", path)
    if text is None:
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            raise MalformedMarkupError("file is not valid UTF-8", path) from None
        except OSError as exc:
            raise BuildError(f"Could not read {path}: {exc}") from exc
    meta, body, body_line = split_front_matter(text, path)
    title = (meta.get("title") or "").strip()
    if not title:
        raise MalformedMetadataError("missing required field 'title'", path)
    find_fences(body, path, body_line)

    date_value = meta.get("date") or match.group("date")
    explicit_slug = (meta.get("slug") or "").strip()
    slug = slugify(explicit_slug or match.group("name"))
    draft = parse_bool(meta.get("draft"))
    if "published" in meta and not parse_bool(meta["published"]):
        draft = True
    return Document(
        slug=slug,
        title=title,
        date=parse_date(date_value, path),
        body=body,
        excerpt=(meta.get("excerpt") or meta.get("description") or "").strip(),
        tags=get_tags(meta),
        source=path,
        draft=draft,
        meta=meta,
    )


class ContentStore:
    """Posts directory scanned in sorted order; iterating rescans it."""

    def __init__(self, posts_dir: Path, include_drafts: bool = False):
        self.posts_dir = Path(posts_dir)
        self.include_drafts = include_drafts

    def files(self) -> list[Path]:
        if not self.posts_dir.is_dir():
            raise BuildError(f"Posts directory not found: {self.posts_dir}")
        found = []
        for path in sorted(self.posts_dir.rglob("*"), key=lambda p: p.as_posix()):
            if not path.is_file() or path.suffix.lower() not in POST_SUFFIXES:
                continue
            if not POST_FILE_RE.match(path.stem):
                print(f"Skipping {path}: name does not start with YYYY-MM-DD-", file=sys.stderr)
                continue
            found.append(path)
        return found

    def __iter__(self) -> Iterator[Document]:
        for path in self.files():
            document = parse_document(path)
            if document.draft and not self.include_drafts:
                continue
            yield document

    def load(self) -> list[Document]:
        documents = []
        seen: dict[str, Path] = {}
        for document in self:
            if document.slug in seen:
                raise MalformedMetadataError(
                    f"duplicate slug {document.slug!r} (also used by {seen[document.slug]})",
                    document.source,
                )
            seen[document.slug] = document.source
            documents.append(document)
        return documents


def normalize_list_spacing(text: str) -> str:
    lines = text.splitlines()
    out: list[str] = []
    in_fence = False
    fence_marker = ""
    for line in lines:
        fence_match = FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group("marker")
            if not in_fence:
                in_fence = True
                fence_marker = marker
            elif (
                marker[0] == fence_marker[0]
                and len(marker) >= len(fence_marker)
                and not fence_match.group("info").strip()
            ):
                in_fence = False
                fence_marker = ""
            out.append(line)
            continue
        if in_fence:
            out.append(line)
            continue
        quote_match = DOUBLE_QUOTE_RE.match(line)
        if quote_match:
            rest = quote_match.group("rest").lstrip()
            if rest:
                line = f'{quote_match.group("indent")}> {rest}'
            else:
                line = f'{quote_match.group("indent")}>'
        list_match = LIST_MARKER_RE.match(line)
        if list_match:
            if not list_match.group("indent"):
                if out and out[-1].strip() and not LIST_MARKER_RE.match(out[-1]):
                    out.append("")
        out.append(line)
    return "\n".join(out)


def count_words(text: str) -> int:
    text = html_lib.unescape(text)
    cjk_count = len(CJK_RE.findall(text))
    text = CJK_RE.sub(" ", text)
    word_count = len(WORD_RE.findall(text))
    return cjk_count + word_count
