"""Repair passes for JSON bodies mangled by intermediary proxies.

Each pass is a pure text transform. repair_candidates() returns them in the
order a caller should retry json.loads on them; the first one that parses wins.
"""

import json
import re
from urllib.parse import unquote

# Bareword key right after an opening brace/bracket or a comma: {role: -> {"role":
_BARE_KEY = re.compile(r"([{,\[]\s*)([A-Za-z_][A-Za-z0-9_\-]*)\s*:")

# Bareword scalar after a colon, up to , } or ]. Trailing spaces are stripped in _quote
_BARE_VALUE = re.compile(r":\s*([A-Za-z_][A-Za-z0-9_\-/. ]*)([,}\]])")

_JSON_LITERALS = frozenset({"true", "false", "null"})

_ROLE_FRAGMENT = re.compile(r"role:([A-Za-z_\-]+)")
_CONTENT_FRAGMENT = re.compile(r"content:([^,}\]]+)")


def percent_decode(text: str) -> str:
    """Undo URL percent-encoding. '+' is left alone."""
    return unquote(text)


def quote_bare_keys(text: str) -> str:
    """Quote bareword object keys: {role:"x"} -> {"role":"x"}."""
    return _BARE_KEY.sub(r'\1"\2":', text)


def quote_bare_values(text: str) -> str:
    """Quote bareword scalar values, leaving true/false/null untouched.

    Numbers never match since a bareword must start with a letter or '_'.
    """
    def _quote(match: re.Match) -> str:
        word = match.group(1).rstrip()
        if word in _JSON_LITERALS:
            return match.group(0)
        return f':"{word}"{match.group(2)}'

    return _BARE_VALUE.sub(_quote, text)


def quote_barewords(text: str) -> str:
    """Keys first, then values, over the same text."""
    return quote_bare_values(quote_bare_keys(text))


def quote_role_content(text: str) -> str:
    """Rebuild role:<word> and content:<text> fragments as key/value pairs.

    For payloads that lost nearly all punctuation. The content value runs up to
    the next , } or ] and is JSON-escaped, so it cannot itself contain those.
    """
    text = _ROLE_FRAGMENT.sub(lambda m: f'"role":"{m.group(1)}"', text)
    return _CONTENT_FRAGMENT.sub(lambda m: f'"content":{json.dumps(m.group(1))}', text)


REPAIR_PASSES = (
    ("unchanged", lambda text: text),
    ("percent_decoded", percent_decode),
    ("quoted_barewords", quote_barewords),
    ("quoted_role_content", quote_role_content),
)


def repair_candidates(text: str) -> list[str]:
    """Ordered repair candidates for text that failed to parse as JSON."""
    return [repair(text) for _, repair in REPAIR_PASSES]
