import logging
import time
from dataclasses import dataclass
from typing import List, Optional

import requests

from .config import Settings

logger = logging.getLogger(__name__)


def pinned_temperature(requested: Optional[float], default: float, pinned: float) -> float:
    """Temperature actually sent upstream.

    The caller's value (or the configured default) is accepted and logged, but
    completions always run at ``pinned``.
    """
    effective = default if requested is None else requested
    if effective != pinned:
        logger.info("Requested temperature %s ignored; using pinned %s", effective, pinned)
    return pinned


@dataclass
class CompletionResult:
    text: str
    backend_used: str
    model_id: str
    generation_seconds: float
    finish_reason: Optional[str] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    error: str = ""


class ChatCompletionBackend:
    """Single-shot chat completions against an OpenAI-compatible endpoint."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.backend = (settings.model_backend or "openai_compatible").strip().lower()
        self.base_url = settings.openai_base_url.strip().rstrip("/")
        self.api_key = settings.openai_api_key.strip()
        self.timeout_seconds = int(settings.llm_timeout_seconds)
        self._session = session or requests.Session()

    def complete(
        self,
        model: str,
        prompt: str,
        temperature: float,
        max_tokens: int,
        system: Optional[str] = None,
    ) -> CompletionResult:
        if self.backend == "openai_compatible":
            return self._complete_openai_compatible(model, prompt, temperature, max_tokens, system)
        return CompletionResult(text="", backend_used="mock", model_id=model, generation_seconds=0.0)

    def _complete_openai_compatible(
        self,
        model: str,
        prompt: str,
        temperature: float,
        max_tokens: int,
        system: Optional[str],
    ) -> CompletionResult:
        started = time.perf_counter()
        if not self.base_url:
            return CompletionResult(
                text="",
                backend_used="openai_compatible",
                model_id=model,
                generation_seconds=0.0,
                error="OPENAI_BASE_URL is not configured",
            )

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        messages: List[dict] = []
        if system and system.strip():
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        payload = {
            "model": model,
            "messages": messages,
            "temperature": float(temperature),
            "max_completion_tokens": int(max_tokens),
        }

        try:
            response = self._session.post(
                f"{self.base_url}/chat/completions",
                headers=headers,
                json=payload,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            return CompletionResult(
                text="",
                backend_used="openai_compatible",
                model_id=model,
                generation_seconds=round(time.perf_counter() - started, 3),
                error=str(exc),
            )

        choice = (data.get("choices") or [{}])[0]
        usage = data.get("usage") or {}
        result = CompletionResult(
            text=((choice.get("message") or {}).get("content") or "").strip(),
            backend_used="openai_compatible",
            model_id=data.get("model") or model,
            generation_seconds=round(time.perf_counter() - started, 3),
            finish_reason=choice.get("finish_reason"),
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
            total_tokens=usage.get("total_tokens"),
        )
        logger.info(
            "Completion usage model=%s finish=%s prompt=%s completion=%s total=%s (%.3fs)",
            result.model_id,
            result.finish_reason,
            result.prompt_tokens,
            result.completion_tokens,
            result.total_tokens,
            result.generation_seconds,
        )
        return result
