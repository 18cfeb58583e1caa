from __future__ import annotations

import html

from markdown.extensions import Extension
from markdown.preprocessors import Preprocessor
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .content import find_fences
from .errors import BuildError

CSS_CLASS = "highlight"


def highlight_code(code: str, lang: str) -> str:
    """Highlight ``code`` with Pygments, or fall back to plain ``<pre>``.

    An unknown or empty language tag is not an error: authors mistype
    them, and the block still renders as preformatted text.
    """
    lexer = None
    if lang:
        try:
            lexer = get_lexer_by_name(lang)
        except ClassNotFound:
            lexer = None
    if lexer is None:
        lang_attr = f' data-lang="{html.escape(lang)}"' if lang else ""
        return f'<pre class="plain"{lang_attr}><code>{html.escape(code)}\n</code></pre>'
    formatter = HtmlFormatter(cssclass=CSS_CLASS)
    return highlight(code, lexer, formatter)


def highlight_css(style: str) -> str:
    try:
        formatter = HtmlFormatter(style=style, cssclass=CSS_CLASS)
    except ClassNotFound:
        raise BuildError(f"Unknown highlight style: {style}") from None
    return formatter.get_style_defs(f".{CSS_CLASS}") + "\n"


class FencedHighlightPreprocessor(Preprocessor):
    def run(self, lines):
        blocks = find_fences("\n".join(lines))
        if not blocks:
            return lines
        out: list[str] = []
        cursor = 0
        for block in blocks:
            out.extend(lines[cursor : block.start])
            placeholder = self.md.htmlStash.store(highlight_code(block.code, block.lang))
            out.extend(["", placeholder, ""])
            cursor = block.end + 1
        out.extend(lines[cursor:])
        return out


class FencedHighlightExtension(Extension):
    def extendMarkdown(self, md):
        md.preprocessors.register(FencedHighlightPreprocessor(md), "fenced_highlight", 25)
