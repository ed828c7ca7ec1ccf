"""Format conversion between Jira wiki markup and Markdown."""

from .common import (
    ConversionResult,
    coerce_text,
    convert,
    detect_format_heuristic,
    markdown_to_wiki_lang,
    wiki_to_markdown_lang,
)
from .markdown_to_wiki import MarkdownParser, markdown_to_wiki
from .wiki_to_markdown import WikiMarkupParser, wiki_to_markdown

__all__ = [
    "ConversionResult",
    "MarkdownParser",
    "WikiMarkupParser",
    "coerce_text",
    "convert",
    "detect_format_heuristic",
    "markdown_to_wiki",
    "markdown_to_wiki_lang",
    "wiki_to_markdown",
    "wiki_to_markdown_lang",
]
