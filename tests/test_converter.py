"""
Tests for the Jira wiki markup <-> Markdown converters.
"""

import unittest

import pytest

from jira_note_sync.converters import (
    MarkdownParser,
    WikiMarkupParser,
    coerce_text,
    convert,
    detect_format_heuristic,
    markdown_to_wiki,
    markdown_to_wiki_lang,
    wiki_to_markdown,
    wiki_to_markdown_lang,
)


class TestWikiToMarkdown(unittest.TestCase):
    """Test Jira wiki markup -> Markdown."""

    def test_mixed_document(self):
        wiki = "h1. Title\n*bold* and _italic_\n* item one\n** item two"
        result = wiki_to_markdown(wiki)
        self.assertEqual(
            result, "# Title\n**bold** and *italic*\n* item one\n  * item two"
        )

    def test_heading_levels(self):
        self.assertEqual(wiki_to_markdown("h3. Deep"), "### Deep")
        self.assertEqual(wiki_to_markdown("h6. Deepest"), "###### Deepest")

    def test_ordered_list_nesting(self):
        self.assertEqual(
            wiki_to_markdown("# one\n## two\n# three"),
            "1. one\n   1. two\n1. three",
        )

    def test_monospace(self):
        self.assertEqual(wiki_to_markdown("run {{make test}}"), "run `make test`")

    def test_inline_wrappers(self):
        self.assertEqual(
            wiki_to_markdown("+ins+ ^sup^ ~sub~ -strike-"),
            "<ins>ins</ins> <sup>sup</sup> <sub>sub</sub> ~~strike~~",
        )

    def test_hyphenated_words_are_not_strikethrough(self):
        self.assertEqual(
            wiki_to_markdown("a well-known co-worker"), "a well-known co-worker"
        )

    def test_code_block_keeps_language_and_body(self):
        wiki = "{code:python}\ndef f(*args):\n    return _x_\n{code}"
        self.assertEqual(
            wiki_to_markdown(wiki),
            "```python\ndef f(*args):\n    return _x_\n```",
        )

    def test_code_block_without_language(self):
        self.assertEqual(
            wiki_to_markdown("{code}\n*raw*\n{code}"), "```\n*raw*\n```"
        )

    def test_code_block_attributes_warn(self):
        result = WikiMarkupParser().parse(
            "{code:java|title=Example.java}\nint x;\n{code}"
        )
        self.assertEqual(result.text, "```java\nint x;\n```")
        self.assertTrue(any("attributes" in w for w in result.warnings))

    def test_noformat_block(self):
        self.assertEqual(
            wiki_to_markdown("{noformat}\nraw *text*\n{noformat}"),
            "```\nraw *text*\n```",
        )

    def test_unnamed_link(self):
        self.assertEqual(
            wiki_to_markdown("see [http://example.com]"),
            "see <http://example.com>",
        )

    def test_named_link(self):
        self.assertEqual(
            wiki_to_markdown("[Example|http://example.com]"),
            "[Example](http://example.com)",
        )

    def test_image(self):
        self.assertEqual(
            wiki_to_markdown("!http://example.com/a.png!"),
            "![](http://example.com/a.png)",
        )
        self.assertEqual(
            wiki_to_markdown("!http://example.com/a.png|alt=diagram!"),
            "![diagram](http://example.com/a.png)",
        )

    def test_blockquote(self):
        self.assertEqual(wiki_to_markdown("bq. quoted"), "> quoted")
        self.assertEqual(
            wiki_to_markdown("{quote}\nfirst\nsecond\n{quote}"),
            "> first\n> second",
        )

    def test_color_is_stripped_with_warning(self):
        result = WikiMarkupParser().parse("{color:red}warning{color}")
        self.assertEqual(result.text, "warning")
        self.assertTrue(result.converted)
        self.assertTrue(any("Color" in w for w in result.warnings))

    def test_panel_becomes_single_column_table(self):
        self.assertEqual(
            wiki_to_markdown("{panel:title=Note}\nBody text\n{panel}"),
            "| Note |\n| --- |\n| Body text |",
        )

    def test_table_header_gets_separator(self):
        self.assertEqual(
            wiki_to_markdown("||Name||Value||\n|a|b|"),
            "| Name | Value |\n| --- | --- |\n|a|b|",
        )

    def test_non_string_input_is_coerced(self):
        self.assertEqual(wiki_to_markdown(None), "")
        self.assertEqual(wiki_to_markdown(42), "42")

    def test_rule_failure_returns_input_unchanged(self):
        parser = WikiMarkupParser()

        def broken(text):
            raise RuntimeError("boom")

        parser._convert_headings = broken
        result = parser.parse("h1. Title")
        self.assertEqual(result.text, "h1. Title")
        self.assertFalse(result.converted)
        self.assertIn("boom", result.warnings[0])


class TestMarkdownToWiki(unittest.TestCase):
    """Test Markdown -> Jira wiki markup."""

    def test_mixed_document(self):
        markdown = "# Title\n**bold** and *italic*\n* item one\n  * item two"
        self.assertEqual(
            markdown_to_wiki(markdown),
            "h1. Title\n*bold* and _italic_\n* item one\n** item two",
        )

    def test_underscore_italic_and_bold_italic(self):
        self.assertEqual(markdown_to_wiki("_it_"), "_it_")
        self.assertEqual(markdown_to_wiki("***both***"), "_*both*_")

    def test_snake_case_is_not_emphasis(self):
        self.assertEqual(markdown_to_wiki("call my_func_name"), "call my_func_name")

    def test_setext_headings(self):
        self.assertEqual(markdown_to_wiki("Title\n====="), "h1. Title")
        self.assertEqual(markdown_to_wiki("Sub\n---"), "h2. Sub")

    def test_horizontal_rule(self):
        self.assertEqual(markdown_to_wiki("a\n\n---\nb"), "a\n\n----\nb")

    def test_ordered_list_nesting(self):
        self.assertEqual(
            markdown_to_wiki("1. one\n   1. two\n2. three"),
            "# one\n## two\n# three",
        )

    def test_fenced_code_maps_language(self):
        self.assertEqual(
            markdown_to_wiki("```js\nconst a = 1;\n```"),
            "{code:javascript}\nconst a = 1;\n{code}",
        )

    def test_fenced_code_body_is_untouched(self):
        self.assertEqual(
            markdown_to_wiki("```\n# not a heading\n**x**\n```"),
            "{code}\n# not a heading\n**x**\n{code}",
        )

    def test_inline_code(self):
        self.assertEqual(
            markdown_to_wiki("run `make *all*`"), "run {{make *all*}}"
        )

    def test_links_images_autolinks(self):
        self.assertEqual(
            markdown_to_wiki("[Example](http://example.com)"),
            "[Example|http://example.com]",
        )
        self.assertEqual(
            markdown_to_wiki("![alt](http://example.com/a.png)"),
            "!http://example.com/a.png|alt=alt!",
        )
        self.assertEqual(
            markdown_to_wiki("<http://example.com>"), "[http://example.com]"
        )

    def test_html_wrappers_and_strikethrough(self):
        self.assertEqual(
            markdown_to_wiki("<ins>a</ins> <sup>b</sup> <sub>c</sub> ~~d~~"),
            "+a+ ^b^ ~c~ -d-",
        )

    def test_blockquote(self):
        self.assertEqual(markdown_to_wiki("> quoted"), "bq. quoted")

    def test_table(self):
        self.assertEqual(
            markdown_to_wiki("| A | B |\n| --- | --- |\n| 1 | 2 |"),
            "||A||B||\n|1|2|",
        )

    def test_single_cell_table_becomes_panel(self):
        self.assertEqual(
            markdown_to_wiki("| Note |\n| --- |\n| Body |"),
            "{panel:title=Note}\nBody\n{panel}",
        )

    def test_alignment_and_task_lists_warn(self):
        result = MarkdownParser().parse(
            "| A |\n| :--- |\n| 1 |\n| 2 |\n\n- [ ] todo"
        )
        self.assertTrue(any("alignment" in w for w in result.warnings))
        self.assertTrue(any("Task list" in w for w in result.warnings))


class TestWikiToMarkdownIdempotence(unittest.TestCase):
    def test_second_pass_leaves_output_alone(self):
        wiki = "*bold* with {{code}} and [docs|https://x.io]\n* top\n** nested"
        once = wiki_to_markdown(wiki)
        self.assertEqual(
            once,
            "**bold** with `code` and [docs](https://x.io)\n* top\n  * nested",
        )
        self.assertEqual(wiki_to_markdown(once), once)


class TestPanelRoundTrip(unittest.TestCase):
    def test_panel_survives_both_directions(self):
        wiki = "{panel:title=Note}\nBody text\n{panel}"
        self.assertEqual(markdown_to_wiki(wiki_to_markdown(wiki)), wiki)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, ""),
        ("text", "text"),
        (3.5, "3.5"),
        (True, "true"),
        ({"a": 1}, '{"a": 1}'),
        (["x", "y"], '["x", "y"]'),
    ],
)
def test_coerce_text(value, expected):
    assert coerce_text(value) == expected


def test_language_maps():
    assert markdown_to_wiki_lang("py") == "python"
    assert markdown_to_wiki_lang("rust") == "rust"
    assert wiki_to_markdown_lang("none") == ""
    assert wiki_to_markdown_lang("java") == "java"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("h2. Heading", "wiki"),
        ("{code}\nx\n{code}", "wiki"),
        ("## Heading", "markdown"),
        ("```\nx\n```", "markdown"),
        ("**a** and [b](http://c)", "markdown"),
        ("plain text", "wiki"),
    ],
)
def test_detect_format_heuristic(text, expected):
    assert detect_format_heuristic(text) == expected


def test_convert_auto_direction():
    assert convert("# Title").text == "h1. Title"
    assert convert("h1. Title").text == "# Title"


def test_convert_passes_through_matching_format():
    result = convert("h1. Title", "wiki")
    assert result.text == "h1. Title"
    assert result.converted is False


def test_convert_rejects_unknown_target():
    with pytest.raises(ValueError, match="Unknown target format"):
        convert("text", "html")
