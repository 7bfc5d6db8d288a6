"""Clip classification through the OpenAI API."""

from __future__ import annotations

import base64
import json
import logging
import threading
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import urlparse

import openai
from pydantic import ValidationError

from clipshelf.errors import ClassificationError
from clipshelf.llm import prompts
from clipshelf.models import ClipContent, ImageContent, Suggestion, TextContent

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
MAX_TEXT_CHARS = 2000
MAX_OUTPUT_TOKENS = 300


class Classifier(Protocol):
    def classify(self, content: ClipContent) -> Suggestion:
        ...


def is_url(text: str) -> bool:
    parsed = urlparse(text.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def wants_summary(content: ClipContent) -> bool:
    if isinstance(content, ImageContent):
        return True
    return is_url(content.plain)


class OpenAIClassifier:
    """Asks a chat model for ``{category, tags, summary}``.

    ``client`` is built lazily from ``api_key`` so the key can be changed
    after start-up through ``configure``.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        timeout: float = 30.0,
        client: Any = None,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self._api_key = api_key
        self._client = client
        self._lock = threading.Lock()

    def configure(self, api_key: Optional[str]) -> None:
        with self._lock:
            if api_key == self._api_key:
                return
            self._api_key = api_key or None
            self._client = None
        logger.info("Classifier API key %s", "updated" if api_key else "cleared")

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key) or self._client is not None

    def _get_client(self) -> Any:
        with self._lock:
            if self._client is None:
                if not self._api_key:
                    raise ClassificationError("No LLM API key configured")
                self._client = openai.OpenAI(api_key=self._api_key, timeout=self.timeout)
            return self._client

    def build_messages(self, content: ClipContent) -> List[Dict[str, Any]]:
        suffix = prompts.SUMMARY_REQUEST if wants_summary(content) else prompts.NO_SUMMARY
        messages: List[Dict[str, Any]] = [{"role": "system", "content": prompts.SYSTEM_PROMPT}]

        if isinstance(content, TextContent):
            text = content.plain
            if len(text) > MAX_TEXT_CHARS:
                text = text[:MAX_TEXT_CHARS] + "..."
            messages.append({"role": "user", "content": prompts.TEXT_PROMPT.format(content=text) + suffix})
        else:
            image_url = "data:image/png;base64," + base64.b64encode(content.data).decode("ascii")
            messages.append({
                "role": "user",
                "content": [
                    {
                        "type": "text",
                        "text": prompts.IMAGE_PROMPT.format(width=content.width, height=content.height) + suffix,
                    },
                    {"type": "image_url", "image_url": {"url": image_url, "detail": "auto"}},
                ],
            })
        return messages

    def classify(self, content: ClipContent) -> Suggestion:
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=self.build_messages(content),
                response_format={"type": "json_object"},
                max_tokens=MAX_OUTPUT_TOKENS,
            )
        except openai.OpenAIError as exc:
            raise ClassificationError(f"Classification request failed: {exc}") from exc

        try:
            reply = response.choices[0].message.content or ""
        except (AttributeError, IndexError) as exc:
            raise ClassificationError("Classification response had no content") from exc

        suggestion = parse_suggestion(reply)
        logger.info("LLM categorized %s as %s with tags %s", content.kind, suggestion.category, suggestion.tags)
        return suggestion


def parse_suggestion(reply: str) -> Suggestion:
    """Parse the model's JSON reply, tolerating code fences around it."""
    text = reply.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
        text = text.strip()

    try:
        data = json.loads(text)
    except ValueError as exc:
        raise ClassificationError(f"Classification reply is not JSON: {reply[:80]!r}") from exc

    if not isinstance(data, dict):
        raise ClassificationError("Classification reply is not a JSON object")

    if isinstance(data.get("tags"), list):
        data["tags"] = [tag for tag in data["tags"] if isinstance(tag, str)]

    try:
        return Suggestion.model_validate(data)
    except ValidationError as exc:
        raise ClassificationError(f"Classification reply is incomplete: {exc.errors()[0]['msg']}") from exc
