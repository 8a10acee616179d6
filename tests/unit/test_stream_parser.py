"""Unit tests for provider stream line parsing."""

import pytest

from chet.core.stream_parser import FragmentCounter, extract_fragment, parse_line, split_lines


class TestSplitLines:

    def test_complete_and_partial(self):
        lines, rest = split_lines("", 'data: {"a":1}\n\ndata: {"b"')
        assert lines == ['data: {"a":1}']
        assert rest == 'data: {"b"'

    def test_buffer_carried_over(self):
        lines, rest = split_lines('data: {"b"', ":2}\n")
        assert lines == ['data: {"b":2}']
        assert rest == ""

    def test_no_newline(self):
        assert split_lines("", "abc") == ([], "abc")


class TestParseLine:

    def test_sse_line(self):
        assert parse_line('data: {"response":"Hi"}') == {"response": "Hi"}

    def test_bare_json_line(self):
        assert parse_line('{"response":"Hi"}') == {"response": "Hi"}

    def test_trailing_garbage_after_object(self):
        assert parse_line('data: {"response":"Hi"} extra') == {"response": "Hi"}

    def test_done_marker(self):
        assert parse_line("data: [DONE]") is None
        assert parse_line("[DONE]") is None

    @pytest.mark.parametrize("line", ["data: [DONE]", "", "data:", ": keep-alive", "data: {broken"])
    def test_ignored(self, line):
        assert parse_line(line) is None


class TestExtractFragment:

    def test_fragment(self):
        assert extract_fragment('data: {"response":"lo"}') == "lo"

    def test_missing_response(self):
        assert extract_fragment('data: {"usage":{"total_tokens":3}}') is None

    def test_non_string_response(self):
        assert extract_fragment('data: {"response":null}') is None


class TestFragmentCounter:

    def test_counts_across_chunks(self):
        counter = FragmentCounter()
        counter.feed(b'data: {"response":"Hel"}\n\ndata: {"resp')
        counter.feed(b'onse":"lo"}\n\n')
        counter.feed(b"data: [DONE]\n\n")
        counter.flush()
        assert counter.fragments == 2
        assert counter.characters == 5

    def test_multibyte_split(self):
        encoded = 'data: {"response":"héllo"}\n'.encode("utf-8")
        split = encoded.index("é".encode("utf-8")) + 1
        counter = FragmentCounter()
        counter.feed(encoded[:split])
        counter.feed(encoded[split:])
        assert counter.fragments == 1
        assert counter.characters == 5

    def test_flush_counts_unterminated_line(self):
        counter = FragmentCounter()
        counter.feed(b'data: {"response":"end"}')
        assert counter.fragments == 0
        counter.flush()
        assert counter.fragments == 1
