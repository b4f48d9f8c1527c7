"""
Summarization Adapter

Single call site for turning extracted text into a structured summary:

  ┌───────────────────────────────────────────────────────────┐
  │  Summarizer.summarize(text, file_name, options, chunks)   │
  │       │                                                   │
  │       ├── no API key ──► offline_summary()  (fallback.py) │
  │       │                                                   │
  │       ▼                                                   │
  │  ChatOpenAI (OpenAI-compatible base_url)                  │
  │       │   raises ──► SummarizationError                   │
  │       ▼                                                   │
  │  _parse_response()                                        │
  │       │   unparseable ──► minimal summary (raw content)   │
  │       ▼                                                   │
  │  SummaryResult                                            │
  └───────────────────────────────────────────────────────────┘

A provider that answers with free text degrades to a minimal summary; only
a provider that cannot be reached (or errors) fails the document.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from app.core.config import settings
from app.core.exceptions import SummarizationError
from app.llm.fallback import offline_summary
from app.llm.types import SummarizationOptions, SummaryResult

logger = logging.getLogger(__name__)

# Inputs longer than this are summarised from their leading chunks
LONG_TEXT_CHARS   = 10_000
LONG_TEXT_CHUNKS  = 5

_FENCE_RE  = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

_SYSTEM_PROMPT = (
    "You summarize documents. Respond with a single JSON object and nothing else. "
    "Fields: title (string), content (string), keyPoints (array of strings), "
    "actionItems (array of strings), tags (array of short lowercase strings)."
)


def build_chat_model(options: SummarizationOptions) -> BaseChatModel:
    """Return the configured provider client."""
    from langchain_openai import ChatOpenAI

    return ChatOpenAI(
        model=options.model,
        api_key=settings.summarizer_api_key,
        base_url=settings.summarizer_base_url,
        temperature=settings.summarizer_temperature,
        max_tokens=settings.summarizer_max_tokens,
        timeout=settings.summarization_timeout_seconds,
        max_retries=1,
    )


class Summarizer:
    """
    Usage:
        summarizer = Summarizer()
        result = await summarizer.summarize(text, "report.pdf", options, chunks)

    `llm` may be injected (tests pass a fake chat model). Without one, the
    provider client is built per call when an API key is configured, and
    the offline summary is used otherwise.
    """

    def __init__(
        self,
        llm:     BaseChatModel | None = None,
        api_key: str | None = None,
    ) -> None:
        self._llm = llm
        self._api_key = settings.summarizer_api_key if api_key is None else api_key

    @property
    def offline(self) -> bool:
        return self._llm is None and not self._api_key

    async def summarize(
        self,
        text:      str,
        file_name: str,
        options:   SummarizationOptions,
        chunks:    list[str] | None = None,
    ) -> SummaryResult:
        if self.offline:
            logger.warning("No summarizer API key configured — using offline summary")
            return offline_summary(text, file_name, options)

        source = text
        if len(text) > LONG_TEXT_CHARS and chunks:
            source = "\n\n".join(chunks[:LONG_TEXT_CHUNKS])
            logger.info(
                "Summarizing leading chunks | file=%s chars=%d chunks=%d",
                file_name, len(text), min(len(chunks), LONG_TEXT_CHUNKS),
            )

        messages = [
            SystemMessage(content=_SYSTEM_PROMPT),
            HumanMessage(content=(
                f"Summarize the document '{file_name}' in at most "
                f"{options.max_length} words."
                + ("" if options.include_action_items else " Leave actionItems empty.")
                + f"\n\nDocument:\n{source}"
            )),
        ]

        llm = self._llm or build_chat_model(options)
        try:
            response = await llm.ainvoke(messages)
        except Exception as exc:
            logger.error("Summarization provider failed | file=%s error=%s", file_name, exc)
            raise SummarizationError(
                f"Summarization provider error: {type(exc).__name__}: {exc}"
            ) from exc

        raw = response.content if isinstance(response.content, str) else str(response.content)
        result = _parse_response(raw, file_name, options)

        logger.info(
            "Summarized | file=%s model=%s words=%d key_points=%d",
            file_name, result.model, result.word_count, len(result.key_points),
        )
        return result


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def _parse_response(
    raw:       str,
    file_name: str,
    options:   SummarizationOptions,
) -> SummaryResult:
    """
    Parse the provider's JSON answer. Accepts camelCase or snake_case keys
    and markdown code fences. Anything else becomes a minimal summary.
    """
    parsed = _load_json_object(raw)
    if parsed is None:
        logger.warning("Unparseable provider response | file=%s — using raw content", file_name)
        return SummaryResult(
            title=file_name,
            content=raw,
            word_count=len(raw.split()),
            model=options.model,
        )

    title = parsed.get("title")
    content = parsed.get("content")
    title = title if isinstance(title, str) and title.strip() else file_name
    content = content if isinstance(content, str) else raw

    action_items = _string_list(parsed.get("actionItems", parsed.get("action_items")))
    if not options.include_action_items:
        action_items = []

    return SummaryResult(
        title=title.strip(),
        content=content.strip(),
        key_points=_string_list(parsed.get("keyPoints", parsed.get("key_points"))),
        action_items=action_items,
        tags=_string_list(parsed.get("tags")),
        word_count=len(content.split()),
        model=options.model,
    )


def _load_json_object(raw: str) -> dict[str, Any] | None:
    candidate = _FENCE_RE.sub("", raw.strip())
    for attempt in (candidate, _first_object(candidate)):
        if not attempt:
            continue
        try:
            value = json.loads(attempt)
        except ValueError:
            continue
        if isinstance(value, dict):
            return value
    return None


def _first_object(text: str) -> str | None:
    match = _OBJECT_RE.search(text)
    return match.group(0) if match else None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]
