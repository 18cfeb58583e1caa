from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import Iterable

import markdown

from .cache import hash_text
from .content import Document, count_words, normalize_list_spacing, slugify
from .highlight import FencedHighlightExtension, highlight_css
from .render import Templates, fix_relative_img_src, render_template, strip_tags
from .utils import iso_date, join_url

FIRST_PARAGRAPH_RE = re.compile(r"<p>(.*?)</p>", re.DOTALL)
SUMMARY_LENGTH = 200


@dataclass(frozen=True)
class RenderedPost:
    content: str
    toc: str
    summary: str
    words: int


@dataclass
class Site:
    listing: list[Document]
    tag_index: dict[str, list[str]]
    tag_paths: dict[str, str]
    pages: dict[str, bytes] = field(default_factory=dict)


def order_documents(documents: Iterable[Document]) -> list[Document]:
    """Newest first; documents sharing a date are ordered by slug."""
    return sorted(documents, key=lambda doc: (-doc.date.toordinal(), doc.slug))


def build_tag_index(listing: list[Document]) -> dict[str, list[str]]:
    tag_index: dict[str, list[str]] = {}
    for tag in sorted({tag for doc in listing for tag in doc.tags}, key=lambda t: (t.lower(), t)):
        tag_index[tag] = [doc.slug for doc in listing if tag in doc.tags]
    return tag_index


def assign_tag_paths(tags: Iterable[str]) -> dict[str, str]:
    paths: dict[str, str] = {}
    used = {"index"}
    for tag in sorted(tags, key=lambda t: (t.lower(), t)):
        base = slugify(tag)
        slug = base
        if slug in used:
            slug = f"{base}-{hash_text(tag)[:8]}"
        counter = 2
        while slug in used:
            slug = f"{base}-{counter}"
            counter += 1
        used.add(slug)
        paths[tag] = f"tags/{slug}.html"
    return paths


def convert_markdown(body: str, toc_depth: str = "2-4") -> tuple[str, str]:
    md = markdown.Markdown(
        extensions=["tables", "toc", FencedHighlightExtension()],
        extension_configs={"toc": {"toc_depth": toc_depth}},
    )
    html_content = md.convert(normalize_list_spacing(body))
    return html_content, md.toc


def make_summary(document: Document, html_content: str) -> str:
    if document.excerpt:
        return document.excerpt
    match = FIRST_PARAGRAPH_RE.search(html_content)
    source = match.group(1) if match else html_content
    summary = html.unescape(strip_tags(source)).strip().replace("\n", " ")
    return summary[:SUMMARY_LENGTH] + ("..." if len(summary) > SUMMARY_LENGTH else "")


def render_post(document: Document, settings: object) -> RenderedPost:
    html_content, toc_html = convert_markdown(document.body, getattr(settings, "toc_depth", "2-4"))
    html_content = fix_relative_img_src(html_content, "..")
    return RenderedPost(
        content=html_content,
        toc=toc_html,
        summary=make_summary(document, html_content),
        words=count_words(strip_tags(html_content)),
    )


def build_tag_list(tag_index: dict, tag_paths: dict, root: str) -> str:
    items = []
    for tag, slugs in sorted(tag_index.items(), key=lambda x: (-len(x[1]), x[0].lower(), x[0])):
        items.append(
            f'<li><a href="{root}/{tag_paths[tag]}">{html.escape(tag)}</a>'
            f'<span class="count">{len(slugs)}</span></li>'
        )
    return "\n".join(items) if items else "<li>No tags yet.</li>"


def build_sidebar(site: Site, root: str, about_html: str, toc_html: str = "") -> str:
    panels = [
        '<div class="panel">'
        "<h3>About</h3>"
        f"{about_html}"
        "</div>"
    ]
    if toc_html and "<li" in toc_html:
        panels.append(
            '<div class="panel">'
            "<h3>Contents</h3>"
            f"{toc_html}"
            "</div>"
        )
    panels.append(
        '<div class="panel">'
        "<h3>Tags</h3>"
        f'<ul class="tag-list">{build_tag_list(site.tag_index, site.tag_paths, root)}</ul>'
        "</div>"
    )
    return "".join(panels)


def tag_chips(document: Document, tag_paths: dict, root: str) -> str:
    return " ".join(
        f'<a class="chip" href="{root}/{tag_paths[tag]}">{html.escape(tag)}</a>' for tag in document.tags
    )


def build_post_cards(documents: list[Document], rendered: dict, tag_paths: dict, root: str) -> str:
    cards = []
    for document in documents:
        post = rendered[document.slug]
        url = f"{root}/posts/{document.slug}.html"
        cards.append(
            f'<article class="post-card" data-slug="{document.slug}">'
            '<div class="post-meta">'
            f'<span class="post-date">{document.date.isoformat()}</span>'
            f'<div class="post-tags">{tag_chips(document, tag_paths, root)}</div></div>'
            f'<h2 class="post-title"><a href="{url}">{html.escape(document.title)}</a></h2>'
            f'<p class="post-summary">{html.escape(post.summary)}</p>'
            f'<a class="post-more" href="{url}">Read more</a>'
            "</article>"
        )
    return "\n".join(cards) if cards else '<p class="empty">No posts yet.</p>'


class PageBuilder:
    """Lays out every page of a site into ``site.pages``."""

    def __init__(self, site: Site, rendered: dict, templates: Templates, settings: object):
        self.site = site
        self.rendered = rendered
        self.base_template = templates["base.html"]
        self.settings = settings
        self.site_name = getattr(settings, "site_name", "")
        self.site_description = getattr(settings, "site_description", "")
        self.about_html = getattr(settings, "about_html", "") or f"<p>{html.escape(self.site_description)}</p>"
        self.year = str(site.listing[0].date.year) if site.listing else ""

    def emit(self, path: str, text: str) -> None:
        self.site.pages[path] = text.encode("utf-8")

    def page(self, path: str, title: str, root: str, content: str, toc_html: str = "") -> None:
        html_doc = render_template(
            self.base_template,
            title=html.escape(title),
            root=root,
            content=content,
            sidebar=build_sidebar(self.site, root, self.about_html, toc_html),
            site_name=html.escape(self.site_name),
            site_description=html.escape(self.site_description),
            year=self.year,
        )
        self.emit(path, html_doc)

    def build_index(self) -> None:
        root = "."
        content = (
            '<div class="section-head">'
            "<h2>Latest posts</h2>"
            f"<p>{len(self.site.listing)} posts, newest first.</p>"
            "</div>"
            f'<div class="post-grid">'
            f"{build_post_cards(self.site.listing, self.rendered, self.site.tag_paths, root)}</div>"
        )
        self.page("index.html", f"{self.site_name} | Home", root, content)

    def build_posts(self) -> None:
        root = ".."
        for document in self.site.listing:
            post = self.rendered[document.slug]
            content = (
                '<article class="post">'
                '<div class="post-meta">'
                f'<span class="post-date">{document.date.isoformat()}</span>'
                f'<span class="post-words">{post.words} words</span>'
                f'<div class="post-tags">{tag_chips(document, self.site.tag_paths, root)}</div></div>'
                f'<h1 class="post-title">{html.escape(document.title)}</h1>'
                f'<div class="post-body">{post.content}</div>'
                f'<div class="post-footer"><a href="{root}/index.html">Back to home</a></div>'
                "</article>"
            )
            self.page(
                f"posts/{document.slug}.html",
                f"{document.title} | {self.site_name}",
                root,
                content,
                toc_html=post.toc,
            )

    def build_tags(self) -> None:
        root = ".."
        by_slug = {document.slug: document for document in self.site.listing}
        for tag, slugs in self.site.tag_index.items():
            documents = [by_slug[slug] for slug in slugs]
            content = (
                '<div class="section-head">'
                f"<h2>{html.escape(tag)}</h2>"
                f"<p>{len(documents)} posts tagged with this topic.</p>"
                "</div>"
                f'<div class="post-grid">'
                f"{build_post_cards(documents, self.rendered, self.site.tag_paths, root)}</div>"
            )
            self.page(self.site.tag_paths[tag], f"{tag} | {self.site_name}", root, content)
        content = (
            '<div class="section-head">'
            "<h2>Tags</h2>"
            "<p>Every topic covered so far.</p>"
            "</div>"
            f'<ul class="tag-list tag-list--full">'
            f"{build_tag_list(self.site.tag_index, self.site.tag_paths, root)}</ul>"
        )
        self.page("tags/index.html", f"Tags | {self.site_name}", root, content)

    def build_404(self) -> None:
        root = "."
        content = (
            '<div class="section-head">'
            "<h2>404</h2>"
            "<p>Page not found. Try heading back to the homepage.</p>"
            "</div>"
            '<div class="post-card">'
            '<p class="post-summary">The page you requested does not exist.</p>'
            f'<a class="post-more" href="{root}/index.html">Back to home</a>'
            "</div>"
        )
        self.page("404.html", f"404 | {self.site_name}", root, content)

    def build_atom(self, site_url: str, feed_limit: int) -> None:
        site_url = site_url.rstrip("/")
        listing = self.site.listing
        updated = iso_date(listing[0].date) if listing else "1970-01-01T00:00:00Z"
        entries = []
        for document in listing[:feed_limit]:
            link = join_url(site_url, f"posts/{document.slug}.html")
            summary = self.rendered[document.slug].summary
            entries.append(
                "\n".join(
                    [
                        "<entry>",
                        f"<title>{html.escape(document.title)}</title>",
                        f'<link href="{link}" />',
                        f"<id>{link}</id>",
                        f"<updated>{iso_date(document.date)}</updated>",
                        f"<summary>{html.escape(summary)}</summary>",
                        *[f'<category term="{html.escape(tag)}" />' for tag in document.tags],
                        "</entry>",
                    ]
                )
            )
        atom = "\n".join(
            [
                '<?xml version="1.0" encoding="UTF-8"?>',
                '<feed xmlns="http://www.w3.org/2005/Atom">',
                f"<title>{html.escape(self.site_name)}</title>",
                f"<id>{site_url}/</id>",
                f"<updated>{updated}</updated>",
                f'<link href="{site_url}/atom.xml" rel="self" />',
                f'<link href="{site_url}/" />',
                "\n".join(entries),
                "</feed>",
            ]
        )
        self.emit("atom.xml", atom + "\n")

    def build_sitemap(self, site_url: str) -> None:
        site_url = site_url.rstrip("/")
        urls = [(site_url + "/", None), (join_url(site_url, "tags/index.html"), None)]
        for document in self.site.listing:
            urls.append((join_url(site_url, f"posts/{document.slug}.html"), document.date))
        for tag in self.site.tag_index:
            urls.append((join_url(site_url, self.site.tag_paths[tag]), None))
        items = []
        for url, lastmod in urls:
            lines = ["<url>", f"<loc>{html.escape(url)}</loc>"]
            if lastmod:
                lines.append(f"<lastmod>{lastmod.isoformat()}</lastmod>")
            lines.append("</url>")
            items.append("\n".join(lines))
        sitemap = "\n".join(
            [
                '<?xml version="1.0" encoding="UTF-8"?>',
                '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
                "\n".join(items),
                "</urlset>",
            ]
        )
        self.emit("sitemap.xml", sitemap + "\n")


def render_site(documents: Iterable[Document], templates: Templates, settings: object) -> Site:
    """Render documents into an in-memory page tree.

    The result depends only on the documents, the templates and the
    settings, so rebuilding unchanged content gives byte-identical pages.
    """
    listing = order_documents(documents)
    tag_index = build_tag_index(listing)
    site = Site(listing=listing, tag_index=tag_index, tag_paths=assign_tag_paths(tag_index))
    rendered = {document.slug: render_post(document, settings) for document in listing}

    builder = PageBuilder(site, rendered, templates, settings)
    builder.build_index()
    builder.build_posts()
    builder.build_tags()
    if getattr(settings, "enable_404", True):
        builder.build_404()
    site_url = (getattr(settings, "site_url", "") or "").strip()
    if site_url:
        builder.build_atom(site_url, getattr(settings, "feed_limit", 20))
        builder.build_sitemap(site_url)
    builder.emit("css/highlight.css", highlight_css(getattr(settings, "highlight_style", "default")))
    return site
