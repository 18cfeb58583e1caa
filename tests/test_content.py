import datetime as dt

import pytest

from conftest import write_post
from sitepub.content import (
    ContentStore,
    find_fences,
    normalize_list_spacing,
    parse_document,
    parse_front_matter,
    slugify,
)
from sitepub.errors import BuildError, MalformedMarkupError, MalformedMetadataError


def test_slugify():
    assert slugify("Unit Testing an Actor!") == "unit-testing-an-actor"
    assert slugify("snake_case_name") == "snake-case-name"
    assert slugify("???") == "post"


def test_front_matter_lists_and_quotes():
    meta, body = parse_front_matter('---\ntitle: "Linker: part 1"\ntags: [cpp, "msvc"]\nseries: notes\n---\nHello')
    assert meta["title"] == "Linker: part 1"
    assert meta["tags"] == ["cpp", "msvc"]
    assert meta["series"] == "notes"
    assert body == "Hello"


def test_front_matter_block_lists(posts_dir):
    path = write_post(
        posts_dir,
        "2024-12-13-unit-testing-actor.md",
        extra="tags:\n  - unreal\n  - testing\ncategories:\n  - cpp",
    )
    doc = parse_document(path)
    assert doc.tags == ("unreal", "testing", "cpp")
    assert doc.meta["tags"] == ["unreal", "testing"]


def test_front_matter_scalars_become_strings():
    meta, _ = parse_front_matter("---\ntitle: 1984\ndate: 2024-12-12\ndraft: yes\n---\n")
    assert meta == {"title": "1984", "date": "2024-12-12", "draft": "true"}


def test_invalid_yaml_front_matter_is_malformed():
    with pytest.raises(MalformedMetadataError, match="invalid front matter"):
        parse_front_matter("---\ntitle: [unclosed\n---\nbody")
    with pytest.raises(MalformedMetadataError, match="mapping"):
        parse_front_matter("---\n- just\n- a list\n---\nbody")


def test_missing_front_matter_is_malformed():
    with pytest.raises(MalformedMetadataError):
        parse_front_matter("# Just a heading\n")


def test_unclosed_front_matter_is_malformed():
    with pytest.raises(MalformedMetadataError):
        parse_front_matter("---\ntitle: x\n\nbody")


def test_document_from_filename(posts_dir):
    path = write_post(posts_dir, "2024-12-13-unit-testing-actor.md", tags="[unreal, testing]")
    doc = parse_document(path)
    assert doc.slug == "unit-testing-actor"
    assert doc.date == dt.date(2024, 12, 13)
    assert doc.tags == ("unreal", "testing")
    assert doc.title == "A post"


def test_front_matter_overrides_date_and_slug(posts_dir):
    path = write_post(
        posts_dir,
        "2024-01-01-draft-name.md",
        extra="date: 2024-12-12 10:00:00 +0800\nslug: Linker Issues\ncategories: toolchain",
        tags="cpp",
    )
    doc = parse_document(path)
    assert doc.date == dt.date(2024, 12, 12)
    assert doc.slug == "linker-issues"
    assert doc.tags == ("cpp", "toolchain")


def test_missing_title_fails(posts_dir):
    path = write_post(posts_dir, "2024-12-13-untitled.md", title=None)
    with pytest.raises(MalformedMetadataError, match="title"):
        parse_document(path)


def test_invalid_date_fails(posts_dir):
    path = write_post(posts_dir, "2024-12-13-bad-date.md", extra="date: someday")
    with pytest.raises(MalformedMetadataError, match="invalid date"):
        parse_document(path)


def test_unterminated_fence_fails(posts_dir):
    path = write_post(posts_dir, "2024-12-13-open-fence.md", body="Intro\n\n```cpp\nint x = 0;\n")
    with pytest.raises(MalformedMarkupError) as excinfo:
        parse_document(path)
    assert excinfo.value.line == 7


def test_find_fences_respects_marker_length():
    text = "````md\n```cpp\ncode\n```\n````\nafter"
    blocks = find_fences(text)
    assert len(blocks) == 1
    assert blocks[0].lang == "md"
    assert blocks[0].code == "```cpp\ncode\n```"


def test_find_fences_mixed_markers():
    blocks = find_fences("~~~python\nx = 1\n~~~\n\n```\nplain\n```")
    assert [block.lang for block in blocks] == ["python", ""]


def test_find_fences_ignores_indented_code():
    text = "Text\n\n    ```cpp\n    int x;\n\nafter"
    assert find_fences(text) == []
    blocks = find_fences("  ```cpp\n  int x;\n  ```")
    assert [(block.indent, block.code) for block in blocks] == [("  ", "int x;")]


def test_store_skips_drafts_and_unconventional_names(posts_dir, capsys):
    write_post(posts_dir, "2024-12-13-kept.md")
    write_post(posts_dir, "2024-12-12-hidden.md", extra="draft: true")
    write_post(posts_dir, "2024-12-11-unpublished.md", extra="published: false")
    write_post(posts_dir, "notes.md")
    (posts_dir / "2024-12-10-image.png").write_bytes(b"\x89PNG")
    store = ContentStore(posts_dir)
    assert [doc.slug for doc in store] == ["kept"]
    assert "notes.md" in capsys.readouterr().err
    assert sorted(doc.slug for doc in ContentStore(posts_dir, include_drafts=True)) == [
        "hidden",
        "kept",
        "unpublished",
    ]


def test_store_iteration_is_restartable(posts_dir):
    write_post(posts_dir, "2024-12-13-one.md")
    write_post(posts_dir, "2024-12-12-two.md")
    store = ContentStore(posts_dir)
    first = [doc.slug for doc in store]
    second = [doc.slug for doc in store]
    assert first == second == ["two", "one"]


def test_store_rejects_duplicate_slugs(posts_dir):
    write_post(posts_dir, "2024-12-13-same.md")
    write_post(posts_dir, "2024-12-14-other.md", extra="slug: same")
    with pytest.raises(MalformedMetadataError, match="duplicate slug"):
        ContentStore(posts_dir).load()


def test_store_missing_directory(tmp_path):
    with pytest.raises(BuildError):
        ContentStore(tmp_path / "nope").load()


def test_normalize_list_spacing_leaves_fences_alone():
    text = "Intro\n- item\n```\nIntro\n- not a list\n```"
    assert normalize_list_spacing(text) == "Intro\n\n- item\n```\nIntro\n- not a list\n```"
