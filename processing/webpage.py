import logging
import re

import requests

import config
from pipeline.errors import RemoteError

logger = logging.getLogger(__name__)

_SCRIPT_RE = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
_STYLE_RE = re.compile(r"<style\b[^>]*>.*?</style\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")


def html_to_text(html: str, max_chars: int = config.PAGE_MAX_CHARS) -> str:
    text = _SCRIPT_RE.sub("", html)
    text = _STYLE_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    text = _SPACE_RE.sub(" ", text).strip()
    return text[:max_chars]


def fetch_page_text(url: str) -> str:
    logger.info("Fetching %s", url)
    try:
        response = requests.get(
            url,
            headers={"User-Agent": config.USER_AGENT},
            timeout=config.PAGE_FETCH_TIMEOUT,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        status = e.response.status_code if e.response is not None else None
        raise RemoteError(f"Failed to fetch page content: {e}", status=status) from e
    return html_to_text(response.text)
