import logging

import requests

import config
from db.models import LLMConfig
from pipeline.errors import ConfigError, EmptyResponseError, RemoteError
from processing.prompts import CONNECTIVITY_QUESTION, SUMMARY_SYSTEM_PROMPT, SUMMARY_USER_PROMPT

logger = logging.getLogger(__name__)


class Summarizer:
    """Chat-completion client for any OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(self, timeout: float = config.LLM_TIMEOUT):
        self.timeout = timeout

    def request(self, content: str, llm_config: LLMConfig | dict | None) -> str:
        user_prompt = SUMMARY_USER_PROMPT.format(content=content)
        return self._call_llm(
            [
                {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            llm_config,
        )

    def ask(self, question: str | None, llm_config: LLMConfig | dict | None) -> str:
        return self._call_llm(
            [{"role": "user", "content": question or CONNECTIVITY_QUESTION}],
            llm_config,
        )

    def _call_llm(self, messages: list[dict], llm_config) -> str:
        llm = _as_config(llm_config)
        if not llm.is_complete():
            raise ConfigError("LLM configuration is incomplete (baseUrl, model and apiKey are required)")

        url = f"{llm.base_url.rstrip('/')}/chat/completions"
        logger.info("Calling %s with model %s", url, llm.model)
        try:
            response = requests.post(
                url,
                json={"model": llm.model, "messages": messages, "stream": False},
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {llm.api_key}",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RemoteError(f"LLM call failed: {e}") from e

        if not response.ok:
            raise RemoteError(
                f"LLM API error: {response.status_code} - {response.text}",
                status=response.status_code, body=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteError(f"LLM returned a non-JSON body: {response.text[:500]}") from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise EmptyResponseError("LLM returned no choices")
        return choices[0].get("message", {}).get("content") or ""


def _as_config(llm_config) -> LLMConfig:
    if isinstance(llm_config, LLMConfig):
        return llm_config
    return LLMConfig(**(llm_config or {}))
