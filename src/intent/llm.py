"""Optional LLM collaborator (feature-flagged).

The pipeline only depends on the `LLMClient` protocol: one synchronous `complete` call that may
raise `LLMError`. `OpenAIChatClient` implements it for OpenAI-style `/chat/completions` APIs.
Callers bound every call with `call_llm`, which runs the blocking client in a worker thread under
a timeout.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

ExpectedShape = Literal["text", "json"]

_JSON_OBJECT_RE = re.compile(r"\{.*\}", flags=re.DOTALL)


class LLMError(RuntimeError):
    """Raised when the LLM call fails or returns unusable output."""


class LLMClient(Protocol):
    """Anything that can answer a system/user prompt pair with text."""

    def complete(self, system_prompt: str, user_prompt: str, expected_shape: ExpectedShape) -> str:
        """Return the raw model output; raise `LLMError` on failure."""
        ...


@dataclass(frozen=True)
class LLMConfig:
    """Configuration for the OpenAI-style Chat Completions API call."""

    api_key: str
    model: str = "gpt-4o-mini"
    api_base: str = "https://api.openai.com/v1"
    timeout_s: float = 10.0


def load_prompt(name: str) -> str:
    """Read a prompt template shipped next to this module."""

    prompt_path = Path(__file__).resolve().parent / "prompts" / name
    return prompt_path.read_text(encoding="utf-8")


def _strip_code_fences(text: str) -> str:
    value = (text or "").strip()
    if value.startswith("```"):
        value = value.strip("`")
        # After stripping backticks, try to remove leading "json" marker.
        value = value.removeprefix("json").strip()
    return value


def parse_json_object(text: str) -> dict[str, Any]:
    """Extract the first JSON object from model output.

    Raises:
        LLMError: If no JSON object can be decoded.
    """

    value = _strip_code_fences(text)
    match = _JSON_OBJECT_RE.search(value)
    if not match:
        raise LLMError("LLM did not return a JSON object")
    try:
        decoded = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise LLMError("LLM did not return valid JSON") from exc
    if not isinstance(decoded, dict):
        raise LLMError("LLM JSON is not an object")
    return decoded


def _chat_completions_url(api_base: str) -> str:
    return api_base.rstrip("/") + "/chat/completions"


class OpenAIChatClient:
    """`LLMClient` backed by an OpenAI-compatible `/v1/chat/completions` endpoint."""

    def __init__(self, config: LLMConfig) -> None:
        self._config = config

    def complete(self, system_prompt: str, user_prompt: str, expected_shape: ExpectedShape) -> str:
        payload: dict[str, Any] = {
            "model": self._config.model,
            "temperature": 0,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if expected_shape == "json":
            payload["response_format"] = {"type": "json_object"}

        req = Request(
            _chat_completions_url(self._config.api_base),
            method="POST",
            headers={
                "Authorization": f"Bearer {self._config.api_key}",
                "Content-Type": "application/json",
            },
            data=json.dumps(payload).encode(),
        )

        try:
            with urlopen(req, timeout=self._config.timeout_s) as resp:  # noqa: S310 (explicit, feature-flagged network call)
                body = resp.read()
        except HTTPError as exc:
            raise LLMError(f"LLM HTTP error: {exc.code}") from exc
        except (URLError, TimeoutError) as exc:
            raise LLMError("LLM connection error") from exc

        try:
            decoded = json.loads(body)
            content = decoded["choices"][0]["message"]["content"]
        except Exception as exc:  # noqa: BLE001
            raise LLMError("Unexpected LLM response format") from exc
        # Refusals and tool-call replies carry `content: null`.
        if not isinstance(content, str):
            raise LLMError("LLM response has no text content")
        return content


async def call_llm(
        client: LLMClient,
        system_prompt: str,
        user_prompt: str,
        *,
        expected_shape: ExpectedShape,
        timeout_s: float,
) -> str:
    """Run one bounded LLM attempt.

    Raises:
        LLMError: On client failure or timeout, or when the client returns no text. There are no
            retries.
    """

    try:
        answer = await asyncio.wait_for(
            asyncio.to_thread(client.complete, system_prompt, user_prompt, expected_shape),
            timeout=timeout_s,
        )
    except TimeoutError as exc:
        raise LLMError(f"LLM call timed out after {timeout_s:.1f}s") from exc
    except LLMError:
        raise
    except Exception as exc:  # noqa: BLE001 - any client failure counts as an unavailable LLM
        raise LLMError(f"LLM call failed: {exc}") from exc

    if not isinstance(answer, str):
        raise LLMError(f"LLM client returned {type(answer).__name__}, expected str")
    return answer
