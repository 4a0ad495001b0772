"""Chat-completions wrapper over the OpenAI SDK.

Any backend failure, an empty answer, or a missing API key surfaces as
`AIServiceError` (502) so callers never see SDK exception types.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any

from openai import OpenAI, OpenAIError

from .errors import AIServiceError

log = logging.getLogger("okr.ai")

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class AIClient:
    def __init__(self, api_key: str | None, model: str = "gpt-4o-mini", base_url: str | None = None, client: Any = None):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _sdk(self) -> Any:
        if self._client is None:
            if not self.api_key:
                raise AIServiceError("AI backend not configured")
            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url, timeout=30.0)
        return self._client

    def complete(self, system: str, prompt: str, *, temperature: float = 0.4, max_tokens: int = 800, json_mode: bool = False) -> str:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            resp = self._sdk().chat.completions.create(**kwargs)
        except OpenAIError as e:
            log.warning("AI completion failed: %s", e)
            raise AIServiceError("AI backend request failed") from e
        text = (resp.choices[0].message.content or "").strip() if resp.choices else ""
        if not text:
            raise AIServiceError("AI backend returned an empty answer")
        return text

    def complete_json(self, system: str, prompt: str, **kwargs: Any) -> Any:
        raw = _FENCE_RE.sub("", self.complete(system, prompt, json_mode=True, **kwargs)).strip()
        try:
            return json.loads(raw)
        except ValueError as e:
            raise AIServiceError("AI backend returned malformed JSON") from e


__all__ = ["AIClient"]
