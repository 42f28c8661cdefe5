import pytest
import requests

from processing.extractors import (
    NO_TEXT,
    decode_payload_result,
    decode_transcripts,
    extract_text,
    first_entry_fallback,
    from_sentence,
    from_text,
    from_transcription_url,
)

URL = "https://results.example.com/job-1.json"


def fetcher(body):
    calls = []

    def fetch(url):
        calls.append(url)
        if isinstance(body, Exception):
            raise body
        return body

    fetch.calls = calls
    return fetch


@pytest.mark.parametrize(
    "body, expected",
    [
        ({"transcripts": [{"text": "hello"}, {"text": "world"}]}, "hello\nworld"),
        ({"payload": {"result": [{"text": "one"}, {"text": "two"}]}}, "one\ntwo"),
        ({"payload": {"result": {"text": "whole text"}}}, "whole text"),
        ({"payload": {"result": {"sentences": [{"text": "s1"}, {"text": "s2"}]}}}, "s1\ns2"),
        ({"payload": {"result": "plain string"}}, "plain string"),
    ],
)
def test_secondary_url_encodings(body, expected):
    assert extract_text([{"transcription_url": URL}], fetcher(body)) == expected


def test_secondary_url_wins_over_direct_text():
    fetch = fetcher({"transcripts": [{"text": "from url"}]})
    entry = {"transcription_url": URL, "text": "inline"}

    assert extract_text([entry], fetch) == "from url"
    assert fetch.calls == [URL]


def test_direct_text_and_sentence_entries_are_joined_by_newline():
    results = [{"text": "first"}, {"sentence": "second"}, {"text": "third"}]
    assert extract_text(results, fetcher({})) == "first\nsecond\nthird"


def test_failed_secondary_fetch_is_reported_inline():
    fetch = fetcher(requests.ConnectionError("unreachable"))
    assert extract_text([{"transcription_url": URL}], fetch) == (
        "failed to fetch transcription result: unreachable"
    )


def test_fallback_uses_first_entry_sentences():
    results = [{"sentences": [{"text": "a"}, {"sentence": "b"}]}, {"sentences": "ignored"}]
    assert extract_text(results, fetcher({})) == "a b"


def test_fallback_accepts_sentences_string():
    assert first_entry_fallback([{"sentences": "just a string"}]) == "just a string"


@pytest.mark.parametrize("results", [[], None, [{}], [{"text": "   "}], "not a list"])
def test_nothing_recognized_yields_fixed_text(results):
    assert extract_text(results, fetcher({})) == NO_TEXT


def test_unknown_secondary_body_contributes_nothing():
    results = [{"transcription_url": URL}, {"text": "kept"}]
    assert extract_text(results, fetcher({"unexpected": True})) == "kept"


def test_entry_extractors_ignore_foreign_shapes():
    fetch = fetcher({})
    assert from_transcription_url({"text": "x"}, fetch) is None
    assert from_text({"sentence": "x"}, fetch) is None
    assert from_sentence({"text": "x"}, fetch) is None
    assert from_text({"text": "x"}, fetch) == "x\n"


def test_body_decoders_ignore_foreign_shapes():
    assert decode_transcripts({"payload": {}}) is None
    assert decode_payload_result({"transcripts": []}) is None
    assert decode_payload_result({"payload": {"result": ""}}) is None
