"""Markdown to Jira wiki markup conversion using ordered regex rules."""

import logging
import re
from typing import Any

from ..errors import TranslationFailure
from .common import ConversionResult, coerce_text, markdown_to_wiki_lang

logger = logging.getLogger(__name__)

_FENCE = re.compile(
    r"^(?P<fence>`{3,}|~{3,})[ \t]*(?P<lang>[^\s`]*)[^\n]*\n"
    r"(?P<body>.*?)\n?^(?P=fence)[ \t]*$",
    re.MULTILINE | re.DOTALL,
)
_INLINE_CODE = re.compile(r"(?<!`)`([^`\n]+)`(?!`)")

# Header row, separator row, then zero or more body rows.
_TABLE = re.compile(
    r"^(?P<header>[ \t]*\|[^\n]*\|)[ \t]*\n"
    r"(?P<separator>[ \t]*\|(?:[ \t]*:?-+:?[ \t]*\|)+)[ \t]*(?:\n|$)"
    r"(?P<body>(?:[ \t]*\|[^\n]*\|[ \t]*(?:\n|$))*)",
    re.MULTILINE,
)

_EMPHASIS = re.compile(
    r"(?<![\w*_\\])([*_]{1,3})(?=[^\s*_])(.+?)(?<=[^\s*_])\1(?![\w*_])"
)
_TAG_WRAPPERS = {"ins": "+", "del": "-", "s": "-", "sup": "^", "sub": "~"}
_TAG_NAME = re.compile(r"/?[A-Za-z][A-Za-z0-9]*/?")


def _split_row(row: str) -> list[str]:
    row = row.strip()
    if row.startswith("|"):
        row = row[1:]
    if row.endswith("|"):
        row = row[:-1]
    return [cell.strip() for cell in row.split("|")]


class MarkdownParser:
    """Parser for converting Markdown to Jira wiki markup."""

    def __init__(self):
        self.warnings: list[str] = []
        self._fences: list[tuple[str, str]] = []
        self._inline_code: list[str] = []

    def parse(self, markdown_text: Any) -> ConversionResult:
        """
        Convert Markdown to wiki markup.

        Never raises: on a rule failure the coerced input is returned
        unchanged with ``converted=False``.
        """
        self.warnings = []
        self._fences = []
        self._inline_code = []
        source = coerce_text(markdown_text)
        self._detect_lossy_elements(source)

        try:
            text = self._apply_rules(source)
        except TranslationFailure as exc:
            logger.warning(
                "Markdown to wiki conversion failed, keeping original text: %s",
                exc,
            )
            return ConversionResult(
                text=source,
                source_format="markdown",
                target_format="wiki",
                converted=False,
                warnings=[str(exc)],
            )

        return ConversionResult(
            text=text,
            source_format="markdown",
            target_format="wiki",
            converted=True,
            warnings=self.warnings,
        )

    def _detect_lossy_elements(self, text: str) -> None:
        if re.search(r"^[ \t]*\|(?:[ \t]*:-+:?[ \t]*\||[ \t]*-+:[ \t]*\|)", text, re.MULTILINE):
            self.warnings.append(
                "Table column alignment dropped - wiki tables have no alignment row"
            )
        if re.search(r"^[ \t]*[*+-][ \t]+\[[ xX]\]", text, re.MULTILINE):
            self.warnings.append(
                "Task list checkboxes kept as plain text"
            )

    def _apply_rules(self, text: str) -> str:
        rules = (
            self._stash_code,
            self._convert_tables,
            self._convert_emphasis,
            self._convert_atx_headings,
            self._convert_setext_headings,
            self._convert_ordered_lists,
            self._convert_unordered_lists,
            self._convert_html_wrappers,
            self._convert_strikethrough,
            self._convert_fenced_code,
            self._convert_inline_code,
            self._convert_images,
            self._convert_links,
            self._convert_autolinks,
            self._convert_blockquotes,
        )
        for rule in rules:
            try:
                text = rule(text)
            except Exception as exc:
                raise TranslationFailure(
                    rule.__name__.lstrip("_"), exc
                ) from exc
        return text

    def _stash_code(self, text: str) -> str:
        """Hide fenced and inline code from every rewrite rule."""

        def stash_fence(match: re.Match[str]) -> str:
            self._fences.append((match.group("lang"), match.group("body")))
            return f"\x00FENCE{len(self._fences) - 1}\x00"

        def stash_inline(match: re.Match[str]) -> str:
            self._inline_code.append(match.group(1))
            return f"\x00INLINE{len(self._inline_code) - 1}\x00"

        text = _FENCE.sub(stash_fence, text)
        return _INLINE_CODE.sub(stash_inline, text)

    def _convert_tables(self, text: str) -> str:
        """Convert header/separator/body tables.

        A one-column table with exactly one body row is panel shorthand:
        the header becomes the panel title and the row its body.
        """

        def convert(match: re.Match[str]) -> str:
            header = _split_row(match.group("header"))
            rows = [
                row.strip()
                for row in match.group("body").split("\n")
                if row.strip()
            ]
            suffix = "\n" if match.group(0).endswith("\n") else ""

            if len(header) == 1 and len(rows) == 1:
                title = header[0]
                body = _split_row(rows[0])[0]
                opening = f"{{panel:title={title}}}" if title else "{panel}"
                return f"{opening}\n{body}\n{{panel}}{suffix}"

            lines = ["||" + "||".join(header) + "||"]
            for row in rows:
                lines.append("|" + "|".join(_split_row(row)) + "|")
            return "\n".join(lines) + suffix

        return _TABLE.sub(convert, text)

    def _convert_emphasis(self, text: str) -> str:
        """``*i*``/``_i_`` -> ``_i_``, ``**b**`` -> ``*b*``, ``***x***`` -> ``_*x*_``."""

        def convert(match: re.Match[str]) -> str:
            content = match.group(2)
            match len(match.group(1)):
                case 1:
                    return f"_{content}_"
                case 2:
                    return f"*{content}*"
                case _:
                    return f"_*{content}*_"

        return _EMPHASIS.sub(convert, text)

    def _convert_atx_headings(self, text: str) -> str:
        def convert(match: re.Match[str]) -> str:
            return f"h{len(match.group(1))}. {match.group(2)}".rstrip()

        return re.sub(
            r"^(#{1,6})[ \t]+(.*?)[ \t]*$", convert, text, flags=re.MULTILINE
        )

    def _convert_setext_headings(self, text: str) -> str:
        """``Title\\n===`` -> ``h1. Title``; ``---`` underline -> h2.

        A standalone ``---`` rule (no paragraph above) becomes ``----``.
        """

        def convert(match: re.Match[str]) -> str:
            level = 1 if match.group("rule").startswith("=") else 2
            return f"h{level}. {match.group('text').strip()}"

        text = re.sub(
            r"^(?![ \t]*(?:h[1-6]\.\s|[*#+-]+[ \t]|\||bq\.\s|>))"
            r"(?P<text>[^\n]*\S[^\n]*)\n(?P<rule>=+|-+)[ \t]*$",
            convert,
            text,
            flags=re.MULTILINE,
        )
        return re.sub(
            r"^(?:-{3,}|\*{3,}|_{3,})[ \t]*$", "----", text, flags=re.MULTILINE
        )

    def _convert_ordered_lists(self, text: str) -> str:
        """Three columns of indentation per level: ``   1. x`` -> ``## x``."""

        def convert(match: re.Match[str]) -> str:
            width = len(match.group(1).expandtabs(4))
            return "#" * (width // 3 + 1) + " "

        return re.sub(
            r"^([ \t]*)\d+[.)][ \t]+", convert, text, flags=re.MULTILINE
        )

    def _convert_unordered_lists(self, text: str) -> str:
        """Two columns of indentation per level: ``  * x`` -> ``** x``."""

        def convert(match: re.Match[str]) -> str:
            width = len(match.group(1).expandtabs(4))
            return "*" * (width // 2 + 1) + " "

        return re.sub(
            r"^([ \t]*)[*+-][ \t]+", convert, text, flags=re.MULTILINE
        )

    def _convert_html_wrappers(self, text: str) -> str:
        def convert(match: re.Match[str]) -> str:
            wrapper = _TAG_WRAPPERS[match.group(1).lower()]
            return f"{wrapper}{match.group(2)}{wrapper}"

        return re.sub(
            r"<(ins|del|s|sup|sub)>(.*?)</\1>",
            convert,
            text,
            flags=re.IGNORECASE,
        )

    def _convert_strikethrough(self, text: str) -> str:
        return re.sub(r"~~(?=\S)(.+?)(?<=\S)~~", r"-\1-", text)

    def _convert_fenced_code(self, text: str) -> str:
        def render(match: re.Match[str]) -> str:
            lang, body = self._fences[int(match.group(1))]
            opening = (
                f"{{code:{markdown_to_wiki_lang(lang)}}}" if lang else "{code}"
            )
            return f"{opening}\n{body}\n{{code}}"

        return re.sub(r"\x00FENCE(\d+)\x00", render, text)

    def _convert_inline_code(self, text: str) -> str:
        return re.sub(
            r"\x00INLINE(\d+)\x00",
            lambda m: "{{" + self._inline_code[int(m.group(1))] + "}}",
            text,
        )

    def _convert_images(self, text: str) -> str:
        def convert(match: re.Match[str]) -> str:
            alt, url = match.group(1), match.group(2)
            return f"!{url}|alt={alt}!" if alt else f"!{url}!"

        return re.sub(
            r"!\[([^\]\n]*)\]\(\s*([^)\s]+)(?:\s+\"[^\"]*\")?\s*\)",
            convert,
            text,
        )

    def _convert_links(self, text: str) -> str:
        return re.sub(
            r"(?<!!)\[([^\]\n]+)\]\(\s*([^)\s]+)(?:\s+\"[^\"]*\")?\s*\)",
            r"[\1|\2]",
            text,
        )

    def _convert_autolinks(self, text: str) -> str:
        """``<target>`` -> ``[target]``; plain HTML tags are left alone."""

        def convert(match: re.Match[str]) -> str:
            target = match.group(1)
            if _TAG_NAME.fullmatch(target):
                return match.group(0)
            return f"[{target}]"

        return re.sub(r"<([^<>\s]+)>", convert, text)

    def _convert_blockquotes(self, text: str) -> str:
        return re.sub(r"^>[ \t]?", "bq. ", text, flags=re.MULTILINE)


def convert_with_warnings(markdown_text: Any) -> ConversionResult:
    """Convert Markdown to wiki markup, keeping the conversion warnings."""
    return MarkdownParser().parse(markdown_text)


def markdown_to_wiki(markdown_text: Any) -> str:
    """Convert Markdown to Jira wiki markup. Never raises."""
    return MarkdownParser().parse(markdown_text).text
