"""Tests for the pieces that take a chain apart."""

import pytest

from chainbot.commands import (
    ChainSyntax, CommandChain, ESCAPED_DELIMITER, ESCAPED_NEWLINE, ESCAPED_PREVIOUS, ESCAPED_SPACE,
    UnbalancedSubchainError, divide_chain, parse_segment, split_chain, strip_sentinels,
)


class TestChainSyntax:
    """Test ChainSyntax validation."""

    def test_defaults(self):
        syntax = ChainSyntax()

        assert syntax.previous == "~"
        assert syntax.chain_delimiter == ">"
        assert syntax.chain_args_delim == ":"
        assert (syntax.sub_chain_start, syntax.sub_chain_end) == ("[", "]")
        assert (syntax.quote_start, syntax.quote_end) == ('"', '"')
        assert syntax.escape == "\\"
        assert syntax.max_depth == 8
        assert syntax.max_repeats == 50
        assert syntax.strict_quotes is False
        assert syntax.max_commands == 500

    @pytest.mark.parametrize("kwargs", [
        {"previous": "~~"},
        {"chain_delimiter": ""},
        {"sub_chain_start": " "},
        {"escape": "\ue001"},
        {"previous": ">"},
        {"quote_start": "[", "quote_end": "["},
        {"max_depth": -1},
        {"max_repeats": -1},
        {"max_commands": 0},
    ])
    def test_invalid(self, kwargs):
        """Test bad settings are rejected."""
        with pytest.raises(ValueError):
            ChainSyntax(**kwargs)

    def test_quotes_may_differ(self):
        syntax = ChainSyntax(quote_start="<", quote_end="}", chain_delimiter="|")

        assert syntax.quote_start == "<"

    def test_hashable(self):
        """Test syntaxes compare by value."""
        assert ChainSyntax(max_depth=3) == ChainSyntax(max_depth=3)
        assert hash(ChainSyntax()) == hash(ChainSyntax())


class TestDivideChain:
    """Test separating chain arguments from commands."""

    def test_no_directives(self, syntax):
        assert divide_chain("echo hi", syntax) == ([], "echo hi")

    def test_directives(self, syntax):
        directives, body = divide_chain("repeat 3, foo bar: roll", syntax)

        assert directives == [["repeat", "3"], ["foo", "bar"]]
        assert body == " roll"

    def test_only_first_delimiter(self, syntax):
        directives, body = divide_chain("repeat 1: echo 12:30", syntax)

        assert directives == [["repeat", "1"]]
        assert body == " echo 12:30"

    def test_empty_clauses_dropped(self, syntax):
        directives, _ = divide_chain(", repeat 2,,: echo", syntax)

        assert directives == [["repeat", "2"]]


class TestSplitChain:
    """Test splitting chains into segments."""

    def test_split(self, syntax):
        assert split_chain("a > b>c", syntax) == ["a ", " b", "c"]

    def test_blank_segments(self, syntax):
        assert split_chain(" > > a >  > b >", syntax) == ["> ", " a ", " b "]

    def test_escaped_delimiter_not_split(self, syntax):
        assert split_chain("a {} b".format(ESCAPED_DELIMITER), syntax) == ["a {} b".format(ESCAPED_DELIMITER)]

    def test_leading_delimiter(self, syntax):
        assert split_chain(">foo > bar", syntax) == [">foo ", " bar"]

    def test_empty(self, syntax):
        assert split_chain("   ", syntax) == []


class TestParseSegment:
    """Test turning a segment into a name and arguments."""

    def test_name_and_arguments(self, syntax):
        assert parse_segment(" echo  a   b ", "", syntax) == ("echo", ["a", "b"])

    def test_previous_appended(self, syntax):
        assert parse_segment("echo a", "prev", syntax) == ("echo", ["a", "prev"])

    def test_previous_alone(self, syntax):
        assert parse_segment("echo", "prev", syntax) == ("echo", ["prev"])

    def test_empty_previous_adds_nothing(self, syntax):
        assert parse_segment("echo a", "", syntax) == ("echo", ["a"])

    def test_previous_substituted(self, syntax):
        assert parse_segment("echo <~>", "x", syntax) == ("echo", ["<x>"])

    def test_previous_with_spaces_splits(self, syntax):
        """Test an unquoted previous result is split into words."""
        assert parse_segment("echo ~", "two words", syntax) == ("echo", ["two", "words"])

    def test_escapes_restored(self, syntax):
        segment = "echo a{space}b{newline}c {previous}".format(
            space=ESCAPED_SPACE, newline=ESCAPED_NEWLINE, previous=ESCAPED_PREVIOUS
        )

        assert parse_segment(segment, "p", syntax) == ("echo", ["a b\nc", "~", "p"])

    def test_escaped_delimiter_restored(self, syntax):
        assert parse_segment("echo a{}b".format(ESCAPED_DELIMITER), "", syntax) == ("echo", ["a>b"])


class TestScan:
    """Test the scanning pass."""

    def test_parts(self, syntax):
        parts, body_start = CommandChain('say "a b" [echo [x]] c', None, syntax).scan()

        assert parts[0] == "say a{0}b ".format(ESCAPED_SPACE)
        assert parts[1].body == "echo [x]"
        assert parts[1].pos == 10
        assert parts[2] == " c"
        assert body_start is None

    def test_body_start(self, syntax):
        _, body_start = CommandChain("repeat 2: echo [a:b]", None, syntax).scan()

        assert body_start == 9

    def test_error_position(self, syntax):
        with pytest.raises(UnbalancedSubchainError) as info:
            CommandChain("echo a]", None, syntax).scan()

        assert info.value.pos == 6
        assert info.value.text == "echo a]"


def test_strip_sentinels():
    assert strip_sentinels("a\ue001b\ue002c\ue003d\ue004e\ue005f") == "abcdef"
    assert strip_sentinels("plain \ue006") == "plain \ue006"
