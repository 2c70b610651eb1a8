import io
import re

import pytest

from xv6fs.grep import grep_stream, match, match_here, match_star


class Chunks:
    def __init__(self, chunks):
        self._it = iter(chunks)

    def read(self, n):
        return next(self._it, b"")


@pytest.mark.parametrize(
    "pattern,text",
    [
        ("^ab", "abc"),
        ("^b", "abc"),
        ("a*b", "aaab"),
        ("x$", "ax"),
        ("x$", "xa"),
        (".", ""),
        ("", ""),
        ("a.c", "abc"),
        ("ab*c", "ac"),
        ("ab*c", "abbbc"),
        ("b.*d", "abcd"),
        ("^.*$", "anything"),
        ("c*", ""),
        ("^a.*z$", "abcz"),
        ("^a.*z$", "abczq"),
        ("hello", "say hello there"),
        ("hellp", "say hello there"),
    ],
)
def test_match_agrees_with_standard_regex(pattern, text):
    assert match(pattern, text) == bool(re.search(pattern, text))


def test_anchored_match():
    assert match("^ab", "abc") is True
    assert match("^bc", "abc") is False


def test_match_here_only_at_start():
    assert match_here("b", "abc") is False
    assert match_here("ab", "abc") is True


def test_match_star():
    assert match_star("a", "b", "aab") is True
    assert match_star("a", "b", "acb") is False
    assert match_star(".", "b", "xyzb") is True


def test_grep_stream_selects_matching_lines():
    stream = io.BytesIO(b"abc\nxyz\nbbb\n")
    assert list(grep_stream("b", stream)) == [b"abc\n", b"bbb\n"]


def test_unterminated_last_line_is_dropped():
    stream = io.BytesIO(b"abc\nabd")
    assert list(grep_stream("ab", stream)) == [b"abc\n"]


def test_chunk_without_newline_is_discarded():
    assert list(grep_stream(".", Chunks([b"ab", b"c\n"]))) == [b"c\n"]


def test_lines_spanning_reads_are_kept():
    lines = [f"line{i}\n".encode() for i in range(300)]
    stream = io.BytesIO(b"".join(lines))
    assert list(grep_stream("^line", stream)) == lines


def test_text_after_nul_is_ignored():
    assert list(grep_stream("cd", io.BytesIO(b"ab\0cd\n"))) == []
    assert list(grep_stream("^ab$", io.BytesIO(b"ab\0cd\n"))) == [b"ab\0cd\n"]