"""Decoders for transcription job results.

The transcription service has shipped several incompatible result encodings.
Each entry of ``output.results`` is handed to an ordered list of extractors;
the first one that recognises the entry's shape decides what it contributes.
Every extractor returns ``None`` when the shape is not its own, so each can
be tested in isolation.
"""

import logging
from typing import Callable

import requests

import config

logger = logging.getLogger(__name__)

NO_TEXT = "no text recognized"

Fetcher = Callable[[str], dict]


def fetch_json(url: str) -> dict:
    response = requests.get(url, timeout=config.TRANSCRIPTION_HTTP_TIMEOUT)
    response.raise_for_status()
    return response.json()


def _texts(items, keys=("text",)) -> list[str]:
    parts = []
    for item in items:
        if isinstance(item, dict):
            parts.append(next((item[k] for k in keys if item.get(k)), ""))
        elif isinstance(item, str):
            parts.append(item)
        else:
            parts.append("")
    return parts


def decode_transcripts(body: dict) -> str | None:
    """``{"transcripts": [{"text": ...}, ...]}``"""
    transcripts = body.get("transcripts")
    if transcripts is None:
        return None
    if not isinstance(transcripts, list):
        return ""
    return "\n".join(_texts(transcripts))


def decode_payload_result(body: dict) -> str | None:
    """``{"payload": {"result": [...] | {...} | "..."}}``"""
    payload = body.get("payload")
    if not isinstance(payload, dict) or not payload.get("result"):
        return None
    result = payload["result"]
    if isinstance(result, list):
        return "\n".join(_texts(result))
    if isinstance(result, dict):
        if result.get("text"):
            return result["text"]
        sentences = result.get("sentences")
        if isinstance(sentences, list):
            return "\n".join(_texts(sentences, keys=("text", "sentence")))
        return ""
    if isinstance(result, str):
        return result
    return ""


BODY_DECODERS = [decode_transcripts, decode_payload_result]


def decode_transcription_body(body) -> str:
    if not isinstance(body, dict):
        return ""
    for decoder in BODY_DECODERS:
        text = decoder(body)
        if text is not None:
            return text
    return ""


def from_transcription_url(entry: dict, fetch: Fetcher = fetch_json) -> str | None:
    url = entry.get("transcription_url")
    if not url:
        return None
    try:
        body = fetch(url)
    except (requests.RequestException, ValueError) as e:
        logger.warning("Could not fetch transcription result %s: %s", url, e)
        return f"failed to fetch transcription result: {e}"
    return decode_transcription_body(body)


def from_text(entry: dict, fetch: Fetcher = fetch_json) -> str | None:
    if not entry.get("text"):
        return None
    return f"{entry['text']}\n"


def from_sentence(entry: dict, fetch: Fetcher = fetch_json) -> str | None:
    if not entry.get("sentence"):
        return None
    return f"{entry['sentence']}\n"


ENTRY_EXTRACTORS = [from_transcription_url, from_text, from_sentence]


def extract_entry(entry: dict, fetch: Fetcher = fetch_json) -> str:
    if not isinstance(entry, dict):
        return ""
    for extractor in ENTRY_EXTRACTORS:
        text = extractor(entry, fetch)
        if text is not None:
            return text
    return ""


def first_entry_fallback(results: list) -> str:
    first = results[0] if results else None
    if not isinstance(first, dict):
        return ""
    if first.get("sentence"):
        return str(first["sentence"])
    sentences = first.get("sentences")
    if isinstance(sentences, list):
        return " ".join(_texts(sentences, keys=("text", "sentence")))
    if isinstance(sentences, str):
        return sentences
    return ""


def extract_text(results, fetch: Fetcher = fetch_json) -> str:
    """Normalize a results collection to trimmed text, never an empty string."""
    if not isinstance(results, list):
        return NO_TEXT
    text = "".join(extract_entry(entry, fetch) for entry in results)
    if not text:
        text = first_entry_fallback(results)
    return text.strip() or NO_TEXT
