"""A small regular-expression matcher supporting only ^ . * $, and line filtering."""
from __future__ import annotations

from typing import Iterator

_BUFSIZE = 1024


def match(pattern: str, text: str) -> bool:
    """Search for ``pattern`` anywhere in ``text``."""
    if pattern.startswith("^"):
        return match_here(pattern[1:], text)
    # The empty string at the end of the text must be tried too.
    return any(match_here(pattern, text[start:]) for start in range(len(text) + 1))


def match_here(pattern: str, text: str) -> bool:
    """Match ``pattern`` at the beginning of ``text``."""
    while True:
        if not pattern:
            return True
        if len(pattern) > 1 and pattern[1] == "*":
            return match_star(pattern[0], pattern[2:], text)
        if pattern == "$":
            return not text
        if text and (pattern[0] == "." or pattern[0] == text[0]):
            pattern = pattern[1:]
            text = text[1:]
            continue
        return False


def match_star(c: str, pattern: str, text: str) -> bool:
    """Match ``c*`` followed by ``pattern`` at the beginning of ``text``."""
    pos = 0
    while True:
        if match_here(pattern, text[pos:]):
            return True
        if pos < len(text) and (text[pos] == c or c == "."):
            pos += 1
            continue
        return False


def _as_text(value) -> str:
    if isinstance(value, str):
        value = value.encode("utf-8", "surrogateescape")
    return bytes(value).decode("latin-1")


def grep_stream(pattern, stream) -> Iterator[bytes]:
    """Yield each newline-terminated line read from ``stream`` that matches.

    ``stream`` is any object whose ``read(n)`` returns bytes.  A line that
    is not terminated by a newline is never reported, and a chunk read
    without any newline in the buffer is discarded.
    """
    pat = _as_text(pattern)
    pending = b""
    while True:
        size = _BUFSIZE - 1 - len(pending)
        if size <= 0:
            break
        chunk = stream.read(size)
        if not chunk:
            break
        pending += bytes(chunk)
        *lines, rest = pending.split(b"\n")
        if not lines:
            pending = b""
            continue
        for line in lines:
            if match(pat, line.split(b"\0", 1)[0].decode("latin-1")):
                yield line + b"\n"
        pending = rest