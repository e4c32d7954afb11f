"""Process-scoped OpenAI client used by every audit stage.

One ``OpenAIClient`` is created when the worker starts and passed into
the orchestrator. It exposes two call shapes:

  - ``generate_grounded()`` — free-text generation with the web-search tool
    (Responses API). URL citations are returned as grounding metadata.
  - ``generate_json()`` — JSON-mode chat completion (response_format
    json_object) over httpx.

Neither call retries or parses. Retry / repair / fallback policy belongs to
the calling stage; timeouts are applied by the stage with ``asyncio.wait_for``.
"""

from __future__ import annotations

import json
import logging
import os
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import httpx
from openai import AsyncOpenAI

from ..config import AuditConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
_OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"
_WEB_SEARCH_TOOL = {"type": "web_search_preview"}


class GenerationError(Exception):
    """The generative service returned an unusable response."""


@dataclass
class GenerationResult:
    """Raw text plus any grounding source URIs the service reported."""

    text: str
    source_urls: List[str] = field(default_factory=list)


class GenerativeClient(Protocol):
    async def generate_grounded(self, prompt: str, *, model: Optional[str] = None) -> GenerationResult:
        ...

    async def generate_json(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        max_output_tokens: Optional[int] = None,
    ) -> GenerationResult:
        ...


def get_openai_key() -> str:
    """Read OPENAI_API_KEY from the environment. Raises EnvironmentError if missing."""
    key = os.getenv("OPENAI_API_KEY", "").strip()
    if not key:
        logger.warning("[OPENAI] API key missing (OPENAI_API_KEY)")
        raise EnvironmentError("OPENAI_API_KEY environment variable not set")
    return key


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------
def sanitize_json(raw: str) -> str:
    """Extract a JSON object from raw LLM output.

    Handles:
      - Markdown fences (```json ... ```)
      - Leading/trailing whitespace and BOM
      - Prose before/after JSON
      - Trailing commas before } or ]

    Raises ValueError if no JSON object is found.
    """
    text = raw.strip().lstrip("\ufeff")

    if text.startswith("```"):
        parts = text.split("```")
        # parts: ["", "json\n{...}", ""] or ["", "{...}", ""]
        text = parts[1] if len(parts) >= 3 else text[3:]

    text = text.strip()
    if text.lower().startswith("json"):
        text = text[4:].strip()

    brace_idx = text.find("{")
    if brace_idx == -1:
        raise ValueError("LLM did not return a JSON object — no '{' found")
    text = text[brace_idx:]

    rbrace_idx = text.rfind("}")
    if rbrace_idx == -1:
        raise ValueError("LLM did not return a JSON object — no '}' found")
    text = text[: rbrace_idx + 1]

    return re.sub(r",\s*([}\]])", r"\1", text)


def safe_json_parse(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse a JSON object out of model text. Never raises; returns None instead."""
    if not raw or not raw.strip():
        return None
    try:
        parsed = json.loads(sanitize_json(raw))
    except (ValueError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


# ---------------------------------------------------------------------------
# Grounding metadata
# ---------------------------------------------------------------------------
def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def collect_citation_urls(response: Any) -> List[str]:
    """Return url_citation URLs from a Responses API result, in order, deduplicated."""
    urls: List[str] = []
    for item in _field(response, "output") or []:
        if _field(item, "type") != "message":
            continue
        for part in _field(item, "content") or []:
            for annotation in _field(part, "annotations") or []:
                if _field(annotation, "type") != "url_citation":
                    continue
                url = _field(annotation, "url")
                if url and url not in urls:
                    urls.append(url)
    return urls


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------
class OpenAIClient:
    """Thin async wrapper over the OpenAI APIs. Construct once per process."""

    def __init__(
        self,
        *,
        api_key: str,
        config: AuditConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        sdk_client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self._api_key = api_key
        self._config = config
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.composition_timeout, connect=5.0),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        )
        self._sdk = sdk_client or AsyncOpenAI(api_key=api_key, max_retries=0)

    @classmethod
    def from_env(cls, config: AuditConfig) -> "OpenAIClient":
        return cls(api_key=get_openai_key(), config=config)

    async def generate_grounded(self, prompt: str, *, model: Optional[str] = None) -> GenerationResult:
        model = model or self._config.research_model
        t0 = time.time()
        response = await self._sdk.responses.create(
            model=model,
            input=prompt,
            tools=[_WEB_SEARCH_TOOL],
        )
        text = (getattr(response, "output_text", None) or "").strip()
        urls = collect_citation_urls(response)
        logger.info(
            "[OPENAI] Grounded call on %s: %d chars, %d citations (%.1fs)",
            model, len(text), len(urls), time.time() - t0,
        )
        return GenerationResult(text=text, source_urls=urls)

    async def generate_json(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        max_output_tokens: Optional[int] = None,
    ) -> GenerationResult:
        model = model or self._config.model
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": "You respond with ONLY a valid JSON object."},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_output_tokens or self._config.extraction_max_tokens,
            "temperature": self._config.temperature,
            "response_format": {"type": "json_object"},
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        t0 = time.time()
        response = await self._http.post(_OPENAI_API_URL, headers=headers, json=payload)
        duration = time.time() - t0
        logger.info("[OPENAI] JSON call on %s: HTTP %s (%.1fs)", model, response.status_code, duration)

        if response.status_code != 200:
            raise GenerationError(f"OpenAI HTTP {response.status_code}: {response.text[:400]}")

        data = response.json()
        usage = data.get("usage")
        if usage:
            logger.info(
                "[OPENAI] Tokens used: prompt=%s, completion=%s",
                usage.get("prompt_tokens", "?"), usage.get("completion_tokens", "?"),
            )
        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError(f"OpenAI response missing message content: {exc}") from exc
        return GenerationResult(text=content.strip())

    async def aclose(self) -> None:
        await self._http.aclose()
        await self._sdk.close()
