"""Line splitting and fragment extraction for the provider's token stream.

The provider streams newline-delimited JSON objects shaped like
{"response": "<fragment>"}, usually framed as SSE ("data: {...}" lines and a
closing "data: [DONE]").
"""

import codecs
import json

_SSE_PREFIX = "data:"
_DONE_MARKER = "[DONE]"


def split_lines(buffer: str, chunk: str) -> tuple[list[str], str]:
    """Append a chunk to the buffer and cut off every complete line.

    Returns:
        Tuple of (non-empty stripped lines, unterminated remainder).
    """
    buffer += chunk
    lines = []
    newline = buffer.find("\n")
    while newline != -1:
        line = buffer[:newline].strip()
        buffer = buffer[newline + 1:]
        if line:
            lines.append(line)
        newline = buffer.find("\n")
    return lines, buffer


def parse_line(line: str) -> dict | None:
    """Extract the JSON object carried by one line, if any.

    Strips SSE framing, then parses from the first '{' to the last '}'.
    Returns None for [DONE], blank and non-JSON lines.
    """
    text = line.strip()
    if text.startswith(_SSE_PREFIX):
        text = text[len(_SSE_PREFIX):].strip()
    if text == _DONE_MARKER or not text.startswith("{"):
        return None

    end = text.rfind("}")
    if end == -1:
        return None
    try:
        value = json.loads(text[:end + 1])
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def extract_fragment(line: str) -> str | None:
    """The 'response' text of a line, or None if it carries none."""
    data = parse_line(line)
    if data is None:
        return None
    fragment = data.get("response")
    return fragment if isinstance(fragment, str) else None


class FragmentCounter:
    """Incremental tally of response fragments across arbitrary byte chunks."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.fragments = 0
        self.characters = 0

    def feed(self, chunk: bytes) -> None:
        lines, self._buffer = split_lines(self._buffer, self._decoder.decode(chunk))
        for line in lines:
            self._count(line)

    def flush(self) -> None:
        self._buffer += self._decoder.decode(b"", final=True)
        if self._buffer.strip():
            self._count(self._buffer)
        self._buffer = ""

    def _count(self, line: str) -> None:
        fragment = extract_fragment(line)
        if fragment is not None:
            self.fragments += 1
            self.characters += len(fragment)
