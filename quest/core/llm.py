"""LLMRouter — OpenAI-first chat completions with Claude fallback (async).

Every LLM call in Quest goes through this module:
- Handover analysis (agents/orchestrator.py) and search-strategy selection
  (graphs/agent_search.py) use complete_json()
- Coaching answers, workspace chat and the Hume CLM endpoint use complete()
  or stream()
- Backends: OpenAI (primary) → Claude API (fallback when only an Anthropic
  key is configured)
- Token usage is logged through structlog
"""

import json
import re
import time
from enum import Enum
from typing import Any, AsyncIterator, Optional

import structlog
from pydantic import BaseModel

log = structlog.get_logger()


class LLMBackend(str, Enum):
    OPENAI = "openai"
    CLAUDE = "claude"


class LLMRequest(BaseModel):
    prompt: str = ""
    system: str = ""
    messages: list[dict[str, str]] = []
    model: str | None = None
    backend: LLMBackend | None = None
    json_mode: bool = False
    max_tokens: int = 1024
    temperature: float = 0.7
    task_type: str = "simple"


class LLMResponse(BaseModel):
    content: str
    backend: LLMBackend
    model: str
    tokens_used: int = 0
    latency_ms: float = 0.0


class LLMRouter:
    """Routes LLM calls to the first configured backend.

    Priority: OpenAI → Claude API. An explicit ``backend`` on the request
    pins the call to that backend.

    Usage::

        router = LLMRouter()
        resp = await router.complete(LLMRequest(prompt="Summarize this..."))
        print(resp.content)

        decision = await router.complete_json(
            prompt="Should the user talk to the calendar agent?",
            system="Answer with JSON only.",
        )
    """

    def __init__(self, settings=None):
        from config.settings import get_settings
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Backend detection
    # ------------------------------------------------------------------

    def _available_backends(self) -> dict[str, bool]:
        return {
            "openai": bool(self.settings.openai_api_key),
            "claude": bool(self.settings.anthropic_api_key),
        }

    def _select_backend(self, request: LLMRequest) -> LLMBackend:
        backends = self._available_backends()
        preferred = [request.backend.value] if request.backend else ["openai", "claude"]
        for b in preferred:
            if backends.get(b):
                return LLMBackend(b)
        raise RuntimeError(
            f"No available LLM backend from preference list {preferred}. "
            "Set OPENAI_API_KEY or ANTHROPIC_API_KEY."
        )

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Route the request to the best available backend and return a response."""
        backend = self._select_backend(request)

        log.info(
            "llm.dispatch",
            backend=backend.value,
            task_type=request.task_type,
            json_mode=request.json_mode,
            prompt_len=len(request.prompt),
        )

        t0 = time.monotonic()
        if backend == LLMBackend.OPENAI:
            resp = await self._openai_complete(request)
        else:
            resp = await self._claude_complete(request)
        resp.latency_ms = round((time.monotonic() - t0) * 1000, 1)

        self._log_usage(resp, request.task_type)
        return resp

    async def generate(
        self,
        prompt: str,
        system: str = "",
        task_type: str = "simple",
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> str:
        """Generate text. Returns the content string directly."""
        resp = await self.complete(LLMRequest(
            prompt=prompt,
            system=system,
            task_type=task_type,
            max_tokens=max_tokens,
            temperature=temperature,
        ))
        return resp.content

    async def complete_json(
        self,
        prompt: str,
        system: str = "",
        task_type: str = "structured",
        max_tokens: int = 1024,
        temperature: float = 0.2,
    ) -> dict[str, Any]:
        """Ask for a JSON object and parse it.

        Raises ValueError when the model output contains no JSON object.
        """
        resp = await self.complete(LLMRequest(
            prompt=prompt,
            system=system,
            json_mode=True,
            task_type=task_type,
            max_tokens=max_tokens,
            temperature=temperature,
        ))
        return parse_json_object(resp.content)

    async def stream(
        self,
        messages: list[dict[str, str]],
        system: str = "",
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        """Yield text deltas from an OpenAI streaming completion."""
        if not self.settings.openai_api_key:
            raise RuntimeError("Streaming requires OPENAI_API_KEY")

        from openai import AsyncOpenAI

        client = AsyncOpenAI(api_key=self.settings.openai_api_key)
        chat: list[dict[str, str]] = []
        if system:
            chat.append({"role": "system", "content": system})
        chat.extend(messages)

        stream = await client.chat.completions.create(
            model=self.settings.openai_chat_model,
            messages=chat,
            max_tokens=max_tokens,
            temperature=temperature,
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta

    # ------------------------------------------------------------------
    # Backend implementations
    # ------------------------------------------------------------------

    def _chat_messages(self, request: LLMRequest) -> list[dict[str, str]]:
        messages = list(request.messages)
        if request.prompt:
            messages.append({"role": "user", "content": request.prompt})
        return messages

    async def _openai_complete(self, request: LLMRequest) -> LLMResponse:
        from openai import AsyncOpenAI

        client = AsyncOpenAI(api_key=self.settings.openai_api_key)
        model = request.model or self.settings.openai_chat_model

        messages = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        messages.extend(self._chat_messages(request))

        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if request.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        resp = await client.chat.completions.create(**kwargs)
        content = resp.choices[0].message.content or ""
        tokens = resp.usage.total_tokens if resp.usage else 0

        return LLMResponse(
            content=content,
            backend=LLMBackend.OPENAI,
            model=model,
            tokens_used=tokens,
        )

    async def _claude_complete(self, request: LLMRequest) -> LLMResponse:
        """Call Anthropic Claude API."""
        import anthropic

        client = anthropic.AsyncAnthropic(api_key=self.settings.anthropic_api_key)
        model = request.model or self.settings.anthropic_model

        system = request.system
        if request.json_mode:
            system = f"{system}\n\nRespond with a single JSON object and nothing else.".strip()

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": request.max_tokens,
            "messages": self._chat_messages(request),
        }
        if system:
            kwargs["system"] = system

        resp = await client.messages.create(**kwargs)
        content = resp.content[0].text
        tokens = (resp.usage.input_tokens or 0) + (resp.usage.output_tokens or 0)

        return LLMResponse(
            content=content,
            backend=LLMBackend.CLAUDE,
            model=model,
            tokens_used=tokens,
        )

    # ------------------------------------------------------------------
    # Token tracking
    # ------------------------------------------------------------------

    def _log_usage(self, resp: LLMResponse, task_type: str) -> None:
        log.info(
            "llm.usage",
            backend=resp.backend,
            model=resp.model,
            tokens=resp.tokens_used,
            latency_ms=resp.latency_ms,
            task_type=task_type,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse a JSON object from model output.

    Accepts bare JSON, ```json fenced blocks, or an object embedded in prose.
    """
    candidates = [text.strip()]
    fenced = _FENCE_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    raise ValueError(f"No JSON object in LLM output: {text[:120]!r}")


_router: Optional[LLMRouter] = None


def get_llm() -> LLMRouter:
    """Process-wide router instance."""
    global _router
    if _router is None:
        _router = LLMRouter()
    return _router
