import re

import pytest

from conftest import make_doc
from sitepub.errors import TemplateError
from sitepub.pages import assign_tag_paths, order_documents, render_site
from sitepub.render import Templates, render_template

SLUG_RE = re.compile(r'data-slug="([^"]+)"')


@pytest.fixture
def templates():
    return Templates.load()


def listed_slugs(page: bytes) -> list[str]:
    return SLUG_RE.findall(page.decode("utf-8"))


def test_index_lists_newest_first(templates, settings):
    docs = [
        make_doc("linker-issues", "2024-12-12", tags=("cpp",)),
        make_doc("unit-testing-actor", "2024-12-13", tags=("unreal", "cpp")),
    ]
    site = render_site(docs, templates, settings)
    assert listed_slugs(site.pages["index.html"]) == ["unit-testing-actor", "linker-issues"]


def test_same_date_breaks_ties_by_slug():
    docs = [make_doc("b-post", "2024-05-01"), make_doc("c-post", "2024-06-01"), make_doc("a-post", "2024-05-01")]
    assert [doc.slug for doc in order_documents(docs)] == ["c-post", "a-post", "b-post"]


def test_every_document_has_one_page(templates, settings):
    docs = [make_doc("one", "2024-01-01"), make_doc("two", "2024-01-02")]
    site = render_site(docs, templates, settings)
    post_pages = sorted(path for path in site.pages if path.startswith("posts/"))
    assert post_pages == ["posts/one.html", "posts/two.html"]
    assert "<h1 class=\"post-title\">One</h1>" in site.pages["posts/one.html"].decode("utf-8")


def test_tag_pages_list_exactly_tagged_documents(templates, settings):
    docs = [
        make_doc("a", "2024-01-01", tags=("cpp",)),
        make_doc("b", "2024-01-02", tags=("cpp", "unreal")),
        make_doc("c", "2024-01-03", tags=("unreal",)),
        make_doc("d", "2024-01-04"),
    ]
    site = render_site(docs, templates, settings)
    assert site.tag_index == {"cpp": ["b", "a"], "unreal": ["c", "b"]}
    for tag, slugs in site.tag_index.items():
        page = site.pages[site.tag_paths[tag]]
        assert set(listed_slugs(page)) == {doc.slug for doc in docs if tag in doc.tags}
    assert "tags/index.html" in site.pages


def test_colliding_tag_slugs_get_distinct_pages():
    paths = assign_tag_paths(["c", "C++", "index"])
    assert paths["c"] == "tags/c.html"
    assert paths["C++"].startswith("tags/c-")
    assert paths["index"] != "tags/index.html"
    assert assign_tag_paths(["C++", "c", "index"]) == paths


def test_rendering_is_byte_stable(templates, settings):
    settings.site_url = "https://example.org"
    docs = [
        make_doc("unit-testing-actor", "2024-12-13", tags=("unreal",), body="```cpp\nint x;\n```\n"),
        make_doc("linker-issues", "2024-12-12", tags=("cpp",), body="```notalang\n???\n```\n"),
    ]
    first = render_site(docs, templates, settings)
    second = render_site(list(reversed(docs)), templates, settings)
    assert first.pages == second.pages


def test_unknown_language_renders_in_post(templates, settings):
    docs = [make_doc("typo", "2024-01-01", body="```pyhton\nprint('hi')\n```\n")]
    page = render_site(docs, templates, settings).pages["posts/typo.html"].decode("utf-8")
    assert '<pre class="plain" data-lang="pyhton">' in page


def test_feeds_need_site_url(templates, settings):
    docs = [make_doc("one", "2024-03-04", tags=("notes",))]
    site = render_site(docs, templates, settings)
    assert "atom.xml" not in site.pages
    assert "sitemap.xml" not in site.pages

    settings.site_url = "https://example.org/"
    site = render_site(docs, templates, settings)
    atom = site.pages["atom.xml"].decode("utf-8")
    assert "<id>https://example.org/posts/one.html</id>" in atom
    assert "<updated>2024-03-04T00:00:00Z</updated>" in atom
    assert "<lastmod>2024-03-04</lastmod>" in site.pages["sitemap.xml"].decode("utf-8")


def test_excerpt_falls_back_to_first_paragraph(templates, settings):
    docs = [make_doc("one", "2024-01-01", body="First *paragraph* here.\n\nSecond paragraph.")]
    index = render_site(docs, templates, settings).pages["index.html"].decode("utf-8")
    assert '<p class="post-summary">First paragraph here.</p>' in index


def test_render_template_is_single_pass():
    out = render_template("<main>{{content}}</main><aside>{{sidebar}}</aside>", content="{{sidebar}}", sidebar="S")
    assert out == "<main>{{sidebar}}</main><aside>S</aside>"


def test_missing_template(tmp_path):
    with pytest.raises(TemplateError):
        Templates.load(tmp_path)
