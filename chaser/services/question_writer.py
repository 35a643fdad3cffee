"""Generates multiple-choice duel questions through OpenRouter."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from ..models.quiz import Question


log = logging.getLogger(__name__)


OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

DEFAULT_AUDIENCE = "a general audience"

_TRANSPORT_ERRORS = (httpx.TimeoutException, httpx.TransportError)


@dataclass
class QuestionWriterConfig:
    api_key: str
    default_model: str
    fallback_model: str
    site_url: str | None = None
    app_name: str | None = None
    timeout_seconds: float = 60.0
    temperature: float = 0.7


class QuestionWriterError(Exception):
    pass


class DocumentProcessor(Protocol):
    """Anything that can hand over the plain text of an uploaded document."""

    async def extract_text(self) -> str: ...


def _system_prompt(count: int, audience: str) -> str:
    return (
        "You are an energetic quiz show host writing questions for a head-to-head chase.\n"
        "Write multiple-choice questions based strictly on the provided material.\n"
        "Rules:\n"
        f"1. Questions must suit {audience}.\n"
        f"2. Write exactly {count} questions.\n"
        "3. Each question has exactly 4 options.\n"
        "4. Give the correct answer index (0, 1, 2 or 3) and vary its position.\n"
        "5. Add a short, encouraging explanation.\n"
        "Return STRICT JSON: an array of objects with keys "
        "question (string), options (array of 4 strings), correctAnswerIndex (integer), explanation (string)."
    )


def _extract_json_array(raw: str) -> list[Any] | None:
    text = raw.strip()
    if text.startswith("```"):
        # ```json ... ``` fences
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("[")
        end = text.rfind("]")
        if start == -1 or end <= start:
            return None
        try:
            data = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            return None
    if isinstance(data, dict):
        # Some models wrap the list: {"questions": [...]}
        data = data.get("questions")
    return data if isinstance(data, list) else None


def parse_questions(raw: str) -> list[Question]:
    """Parse model output into questions, dropping malformed items.

    Raises:
        QuestionWriterError: No JSON array found, or no item survived validation.
    """
    items = _extract_json_array(raw or "")
    if items is None:
        raise QuestionWriterError("Model did not return a JSON array of questions")
    questions: list[Question] = []
    for position, item in enumerate(items):
        try:
            questions.append(Question.model_validate(item))
        except ValidationError as e:
            log.warning("Dropping malformed question #%d: %s", position, e.errors()[:1])
    if not questions:
        raise QuestionWriterError("Model returned no usable questions")
    return questions


class QuestionWriter:
    def __init__(self, cfg: QuestionWriterConfig, client: httpx.AsyncClient | None = None) -> None:
        self.cfg = cfg
        headers = {
            "Authorization": f"Bearer {cfg.api_key}",
            "Content-Type": "application/json",
        }
        if cfg.site_url:
            headers["HTTP-Referer"] = cfg.site_url
        if cfg.app_name:
            headers["X-Title"] = cfg.app_name

        self._client = client or httpx.AsyncClient(
            base_url=OPENROUTER_BASE_URL,
            headers=headers,
            timeout=cfg.timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def write_questions(self, source_text: str, count: int, audience: str = DEFAULT_AUDIENCE) -> list[Question]:
        """Write up to ``count`` questions about ``source_text``.

        The model may return fewer usable questions than asked for; extras are
        dropped.
        """
        source_text = (source_text or "").strip()
        if not source_text:
            raise QuestionWriterError("Nothing to write questions about")
        if count < 1:
            raise QuestionWriterError("Question count must be at least 1")
        messages = [
            {"role": "system", "content": _system_prompt(count, audience)},
            {"role": "user", "content": f"MATERIAL:\n\n{source_text}\n\nReturn JSON only."},
        ]
        text = await self.complete(messages)
        questions = parse_questions(text)[:count]
        if len(questions) < count:
            log.warning("Asked for %d questions, got %d usable", count, len(questions))
        else:
            log.info("Wrote %d questions", len(questions))
        return questions

    async def write_from_document(self, processor: DocumentProcessor, count: int, audience: str = DEFAULT_AUDIENCE) -> list[Question]:
        text = await processor.extract_text()
        return await self.write_questions(text, count, audience)

    async def complete(self, messages: list[dict[str, Any]], model: str | None = None) -> str:
        """Run one chat completion, falling back to the fallback model once."""
        chosen_model = model or self.cfg.default_model
        try:
            return await self._complete_with_retry(messages, chosen_model)
        except (QuestionWriterError, httpx.HTTPError) as e:
            log.warning("Question model failed (%s): %s; trying fallback %s", chosen_model, e, self.cfg.fallback_model)
            try:
                return await self._complete_once(messages, self.cfg.fallback_model)
            except (QuestionWriterError, httpx.HTTPError) as fallback_error:
                log.error("Fallback question model also failed (%s): %s", self.cfg.fallback_model, fallback_error)
                raise QuestionWriterError(
                    f"Both primary ({chosen_model}) and fallback ({self.cfg.fallback_model}) models failed. "
                    f"Last error: {fallback_error}"
                ) from fallback_error

    @retry(
        reraise=True,
        wait=wait_exponential_jitter(initial=1, max=8),
        stop=stop_after_attempt(3),
        retry=retry_if_exception_type(_TRANSPORT_ERRORS),
    )
    async def _complete_with_retry(self, messages: list[dict[str, Any]], model: str) -> str:
        return await self._complete_once(messages, model)

    async def _complete_once(self, messages: list[dict[str, Any]], model: str) -> str:
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": float(self.cfg.temperature),
        }
        resp = await self._client.post("/chat/completions", content=json.dumps(payload))
        request_id = resp.headers.get("x-request-id")
        try:
            data = resp.json()
        except json.JSONDecodeError:
            log.error(
                "OpenRouter returned non-JSON response, status=%s id=%s body=%s",
                resp.status_code,
                request_id,
                resp.text[:500],
            )
            raise QuestionWriterError(f"Invalid JSON from OpenRouter (status={resp.status_code})")

        if resp.status_code >= 400:
            error_obj = data.get("error") if isinstance(data, dict) and isinstance(data.get("error"), dict) else {}
            message = error_obj.get("message") or (data.get("message") if isinstance(data, dict) else None) or str(data)[:200]
            raise QuestionWriterError(f"OpenRouter error {resp.status_code}: {message}")

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices or not isinstance(choices, list):
            raise QuestionWriterError("Malformed response from OpenRouter: missing choices")
        message_obj = choices[0].get("message") if isinstance(choices[0], dict) else None
        text = (message_obj or {}).get("content") or ""
        if not isinstance(text, str):
            text = str(text)
        log.debug("Question completion id=%s model=%s usage=%s", request_id, data.get("model", model), data.get("usage"))
        return text
