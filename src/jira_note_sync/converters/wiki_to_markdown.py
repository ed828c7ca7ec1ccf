"""Jira wiki markup to Markdown conversion using ordered regex rules."""

import logging
import re
from typing import Any

from ..errors import TranslationFailure
from .common import ConversionResult, coerce_text, wiki_to_markdown_lang

logger = logging.getLogger(__name__)


def _wrapped(char: str) -> re.Pattern[str]:
    """Pattern for a single-character inline wrapper such as ``+x+``.

    The span must not start or end with whitespace and the wrapper must not
    touch a word character or another copy of itself.
    """
    c = re.escape(char)
    return re.compile(
        rf"(?<![{c}\w]){c}(?=\S)([^{c}\n]+?)(?<=\S){c}(?![{c}\w])"
    )


_BOLD = _wrapped("*")
_ITALIC = _wrapped("_")
_INSERT = _wrapped("+")
_SUPERSCRIPT = _wrapped("^")
_SUBSCRIPT = _wrapped("~")
_STRIKE = _wrapped("-")

_CODE_BLOCK = re.compile(
    r"\{code(?::(?P<params>[^}]*))?\}(?P<body>.*?)\{code\}", re.DOTALL
)
_NOFORMAT_BLOCK = re.compile(
    r"\{noformat(?::[^}]*)?\}(?P<body>.*?)\{noformat\}", re.DOTALL
)
_PANEL = re.compile(
    r"\{panel(?::(?P<params>[^}]*))?\}(?P<body>.*?)\{panel\}", re.DOTALL
)
_COLOR = re.compile(r"\{color(?::[^}]*)?\}(.*?)\{color\}", re.DOTALL)
_QUOTE_BLOCK = re.compile(r"\{quote\}(.*?)\{quote\}", re.DOTALL)


def _macro_params(params: str | None) -> tuple[str, dict[str, str]]:
    """Split ``lang|title=x|borderStyle=y`` into (positional, attributes)."""
    positional = ""
    attrs: dict[str, str] = {}
    for part in (params or "").split("|"):
        part = part.strip()
        if not part:
            continue
        if "=" in part:
            name, _, value = part.partition("=")
            attrs[name.strip()] = value.strip()
        elif not positional:
            positional = part
    return positional, attrs


def _strip_one_newline(body: str) -> str:
    if body.startswith("\n"):
        body = body[1:]
    if body.endswith("\n"):
        body = body[:-1]
    return body


class WikiMarkupParser:
    """Parser for converting Jira wiki markup to Markdown."""

    def __init__(self):
        self.warnings: list[str] = []
        self._code_blocks: list[tuple[str, int]] = []
        self._noformat_blocks: list[int] = []
        self._bodies: list[str] = []

    def parse(self, wiki_text: Any) -> ConversionResult:
        """
        Convert wiki markup to Markdown.

        Never raises: if a rule fails, the coerced input is returned
        unchanged with ``converted=False`` and the failure as a warning.

        Args:
            wiki_text: Wiki formatted text (non-strings are coerced)

        Returns:
            ConversionResult with Markdown text and warnings about lossy conversions
        """
        self.warnings = []
        self._code_blocks = []
        self._noformat_blocks = []
        self._bodies = []
        source = coerce_text(wiki_text)

        try:
            text = self._apply_rules(source)
        except TranslationFailure as exc:
            logger.warning(
                "Wiki to Markdown conversion failed, keeping original text: %s",
                exc,
            )
            return ConversionResult(
                text=source,
                source_format="wiki",
                target_format="markdown",
                converted=False,
                warnings=[str(exc)],
            )

        return ConversionResult(
            text=text,
            source_format="wiki",
            target_format="markdown",
            converted=True,
            warnings=self.warnings,
        )

    def _apply_rules(self, text: str) -> str:
        # Order matters: later rules must not re-match earlier output.
        rules = (
            self._stash_code_blocks,
            self._convert_unordered_lists,
            self._convert_ordered_lists,
            self._convert_headings,
            self._convert_emphasis,
            self._convert_monospace,
            self._convert_inline_wrappers,
            self._convert_code_blocks,
            self._convert_noformat,
            self._convert_links,
            self._convert_blockquotes,
            self._convert_colors,
            self._convert_panels,
            self._convert_tables,
            self._restore_code_bodies,
        )
        for rule in rules:
            try:
                text = rule(text)
            except Exception as exc:
                raise TranslationFailure(
                    rule.__name__.lstrip("_"), exc
                ) from exc
        return text

    def _stash_body(self, body: str) -> int:
        self._bodies.append(_strip_one_newline(body))
        return len(self._bodies) - 1

    def _stash_code_blocks(self, text: str) -> str:
        """Replace code and noformat blocks with placeholders.

        The fences come back in the code-block and noformat rules; the bodies
        stay hidden until every other rule has run.
        """

        def stash_code(match: re.Match[str]) -> str:
            lang, attrs = _macro_params(match.group("params"))
            if attrs:
                self.warnings.append(
                    "Code block attributes dropped: "
                    + ", ".join(sorted(attrs))
                )
            fence_lang = wiki_to_markdown_lang(lang) if lang else ""
            self._code_blocks.append(
                (fence_lang, self._stash_body(match.group("body")))
            )
            return f"\x00CODE{len(self._code_blocks) - 1}\x00"

        def stash_noformat(match: re.Match[str]) -> str:
            self._noformat_blocks.append(
                self._stash_body(match.group("body"))
            )
            return f"\x00NOFORMAT{len(self._noformat_blocks) - 1}\x00"

        text = _CODE_BLOCK.sub(stash_code, text)
        return _NOFORMAT_BLOCK.sub(stash_noformat, text)

    def _restore_code_bodies(self, text: str) -> str:
        return re.sub(
            r"\x00BODY(\d+)\x00",
            lambda m: self._bodies[int(m.group(1))],
            text,
        )

    def _convert_unordered_lists(self, text: str) -> str:
        """``** item`` -> ``  * item`` (two columns per level)."""

        def convert(match: re.Match[str]) -> str:
            depth = len(match.group(1))
            return "  " * (depth - 1) + "* "

        return re.sub(r"^(\*+)[ \t]+", convert, text, flags=re.MULTILINE)

    def _convert_ordered_lists(self, text: str) -> str:
        """``## item`` -> ``   1. item`` (three columns per level)."""

        def convert(match: re.Match[str]) -> str:
            depth = len(match.group(1))
            return "   " * (depth - 1) + "1. "

        return re.sub(r"^(#+)[ \t]+", convert, text, flags=re.MULTILINE)

    def _convert_headings(self, text: str) -> str:
        """``hN. Title`` -> exactly N hashes."""

        def convert(match: re.Match[str]) -> str:
            level = int(match.group(1))
            return f"{'#' * level} {match.group(2).strip()}".rstrip()

        return re.sub(
            r"^h([1-6])\.(.*)$", convert, text, flags=re.MULTILINE
        )

    def _convert_emphasis(self, text: str) -> str:
        """Bold before italic: ``*b*`` -> ``**b**``, ``_i_`` -> ``*i*``."""
        text = _BOLD.sub(r"**\1**", text)
        return _ITALIC.sub(r"*\1*", text)

    def _convert_monospace(self, text: str) -> str:
        return re.sub(r"\{\{(.+?)\}\}", r"`\1`", text)

    def _convert_inline_wrappers(self, text: str) -> str:
        """Insert, superscript, subscript and strikethrough.

        Subscript runs before strikethrough so the ``~~`` it produces is not
        matched again.
        """
        text = _INSERT.sub(r"<ins>\1</ins>", text)
        text = _SUPERSCRIPT.sub(r"<sup>\1</sup>", text)
        text = _SUBSCRIPT.sub(r"<sub>\1</sub>", text)
        return _STRIKE.sub(r"~~\1~~", text)

    def _convert_code_blocks(self, text: str) -> str:
        """``{code:lang}...{code}`` -> fenced block keeping the language."""

        def render(match: re.Match[str]) -> str:
            lang, body = self._code_blocks[int(match.group(1))]
            return f"```{lang}\n\x00BODY{body}\x00\n```"

        return re.sub(r"\x00CODE(\d+)\x00", render, text)

    def _convert_noformat(self, text: str) -> str:
        text = re.sub(
            r"\x00NOFORMAT(\d+)\x00",
            lambda m: f"```\n\x00BODY{self._noformat_blocks[int(m.group(1))]}\x00\n```",
            text,
        )
        # An unpaired {noformat} still becomes a fence.
        return text.replace("{noformat}", "```")

    def _convert_links(self, text: str) -> str:
        """Convert links and images.

        Unnamed link: [target] -> <target>
        Image: !url|alt=x! -> ![x](url)
        Named link: [text|url] -> [text](url)
        """
        text = re.sub(
            r"(?<!!)\[(?=\S)([^\[\]|\n]+)\](?![(\[])", r"<\1>", text
        )

        def convert_image(match: re.Match[str]) -> str:
            url = match.group(1)
            _, attrs = _macro_params(match.group(2))
            return f"![{attrs.get('alt', '')}]({url})"

        text = re.sub(
            r"!(?=[^\s!\[])([^!\s|]+)(?:\|([^!\n]*))?!", convert_image, text
        )

        return re.sub(
            r"\[([^\[\]|\n]*)\|([^\[\]|\s]+)\]", r"[\1](\2)", text
        )

    def _convert_blockquotes(self, text: str) -> str:
        """``bq. x`` -> ``> x`` and ``{quote}`` blocks -> ``>`` lines."""
        text = re.sub(r"^bq\.[ \t]+", "> ", text, flags=re.MULTILINE)

        def convert_quote(match: re.Match[str]) -> str:
            body = _strip_one_newline(match.group(1))
            return "\n".join(
                f"> {line}".rstrip() for line in body.split("\n")
            )

        return _QUOTE_BLOCK.sub(convert_quote, text)

    def _convert_colors(self, text: str) -> str:
        if _COLOR.search(text):
            self.warnings.append(
                "Color directives removed - Markdown has no text color"
            )
        return _COLOR.sub(r"\1", text)

    def _convert_panels(self, text: str) -> str:
        """``{panel:title=T}body{panel}`` -> one-column table headed by T."""

        def convert(match: re.Match[str]) -> str:
            _, attrs = _macro_params(match.group("params"))
            title = attrs.get("title", "")
            lines = [
                line.strip()
                for line in match.group("body").strip().split("\n")
                if line.strip()
            ]
            if len(lines) > 1:
                self.warnings.append(
                    "Multi-line panel body joined into a single table cell"
                )
            table = f"| {title} |\n| --- |\n| {' '.join(lines)} |"
            at_line_start = match.start() == 0 or text[match.start() - 1] == "\n"
            return table if at_line_start else "\n" + table

        return _PANEL.sub(convert, text)

    def _convert_tables(self, text: str) -> str:
        """``||h1||h2||`` -> header row plus synthesized separator row."""

        def convert_header(match: re.Match[str]) -> str:
            cells = match.group(1).split("||")
            if any(not cell.strip() for cell in cells):
                self.warnings.append(
                    "Empty or spanned header cells kept as empty Markdown cells"
                )
            cells = [cell.strip() for cell in cells]
            header = "| " + " | ".join(cells) + " |"
            separator = "|" + " --- |" * len(cells)
            return f"{header}\n{separator}"

        text = re.sub(
            r"^[ \t]*\|\|(.*?)\|\|[ \t]*$",
            convert_header,
            text,
            flags=re.MULTILINE,
        )
        return re.sub(r"^[ \t]+(?=\|)", "", text, flags=re.MULTILINE)


def convert_with_warnings(wiki_text: Any) -> ConversionResult:
    """Convert wiki markup to Markdown, keeping the conversion warnings."""
    return WikiMarkupParser().parse(wiki_text)


def wiki_to_markdown(wiki_text: Any) -> str:
    """
    Convert Jira wiki markup to Markdown.

    Total on any input: None becomes "", other non-strings are coerced, and
    an internal rule failure returns the coerced input unchanged.
    """
    return WikiMarkupParser().parse(wiki_text).text
