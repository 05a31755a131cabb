"""Thin chat-completion wrapper used for ranking and copy generation."""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Protocol

from openai import OpenAI

from insta_prospector.core.config import DEFAULT_OPENAI_MODEL, require_setting

logger = logging.getLogger(__name__)

Message = Dict[str, str]


class OracleClient(Protocol):
    def complete(
        self,
        messages: List[Message],
        *,
        model: Optional[str] = None,
        temperature: float = 0.2,
        json_mode: bool = False,
    ) -> str:
        ...


class OpenAIOracle:
    """OpenAI chat completions, with the SDK client built on first use."""

    def __init__(self, api_key: Optional[str], model: str = DEFAULT_OPENAI_MODEL) -> None:
        self._api_key = api_key
        self.model = model
        self._client: Optional[OpenAI] = None
        self._lock = threading.Lock()

    def _get_client(self) -> OpenAI:
        with self._lock:
            if self._client is None:
                api_key = require_setting(self._api_key, "OPENAI_API_KEY")
                self._client = OpenAI(api_key=api_key)
            return self._client

    def complete(
        self,
        messages: List[Message],
        *,
        model: Optional[str] = None,
        temperature: float = 0.2,
        json_mode: bool = False,
    ) -> str:
        client = self._get_client()
        kwargs = {
            "model": model or self.model,
            "temperature": temperature,
            "messages": messages,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = client.chat.completions.create(**kwargs)
        if not response.choices:
            return ""
        content = response.choices[0].message.content
        return (content or "").strip()
