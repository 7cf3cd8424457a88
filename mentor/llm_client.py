"""OpenAI-compatible LLM client with structured, streaming and tool-calling turns."""
from __future__ import annotations

import asyncio
import base64
import json
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, AsyncIterator, TypeVar

import openai
from loguru import logger
from pydantic import BaseModel, ValidationError

from mentor.config import settings
from mentor.errors import DeserializationError, ProviderError, preview
from mentor.services import logger as log_service
from mentor.services.cancellation import cancellable

T = TypeVar("T", bound=BaseModel)

DEFAULT_MAX_OUTPUT_TOKENS = 8000


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class TextBlock:
    type: str
    text: str


@dataclass
class ToolUseBlock:
    type: str
    id: str
    name: str
    input: dict[str, Any]


@dataclass
class MessageResponse:
    content: list[Any]
    usage: Usage
    finish_reason: str | None = None

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.content if b.type == "text")

    @property
    def tool_calls(self) -> list[ToolUseBlock]:
        return [b for b in self.content if b.type == "tool_use"]


class ToolMode(str, Enum):
    NONE = "none"
    AUTO = "auto"
    REQUIRED = "required"


@dataclass
class ChatOptions:
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    temperature: float | None = None
    tools: list[dict[str, Any]] = field(default_factory=list)
    tool_mode: ToolMode = ToolMode.NONE
    json_schema: dict[str, Any] | None = None


def conversion_options() -> ChatOptions:
    return ChatOptions(temperature=0.3)


def schema_for(response_model: type[BaseModel]) -> dict[str, Any]:
    """JSON-schema response format payload for a pydantic model."""
    return {
        "name": response_model.__name__,
        "schema": response_model.model_json_schema(by_alias=True),
        "strict": False,
    }


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    try:
        parsed = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


class LLMStream:
    """Async context manager over one streamed completion.

    Text fragments are yielded in arrival order; tool-call deltas and the
    finish reason are accumulated for ``get_final_message``.
    """

    def __init__(
        self,
        stream_coro: Any,
        *,
        model: str,
        caller: str = "stream",
        cancel: asyncio.Event | None = None,
    ):
        self._stream_coro = stream_coro
        self._cancel = cancel
        self._stream: Any | None = None
        self._model = model
        self._caller = caller
        self._usage = Usage()
        self._text_parts: list[str] = []
        self._tool_calls: dict[int, dict[str, str]] = {}
        self._finish_reason: str | None = None
        self._finished = False
        self._started = 0.0

    async def __aenter__(self) -> "LLMStream":
        self._started = time.monotonic()
        try:
            self._stream = await cancellable(self._stream_coro, self._cancel)
        except openai.APIError as exc:
            log_service.log_llm_call(model=self._model, caller=self._caller, status="error", error=str(exc))
            raise ProviderError(f"LLM streaming request failed: {exc}") from exc
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._stream is not None:
            await self._stream.close()

    def _absorb_tool_deltas(self, deltas: list[Any]) -> None:
        for delta in deltas:
            index = getattr(delta, "index", 0) or 0
            slot = self._tool_calls.setdefault(index, {"id": "", "name": "", "arguments": ""})
            if getattr(delta, "id", None):
                slot["id"] = delta.id
            function = getattr(delta, "function", None)
            if function is not None:
                if getattr(function, "name", None):
                    slot["name"] += function.name
                if getattr(function, "arguments", None):
                    slot["arguments"] += function.arguments

    async def _iter_text(self) -> AsyncIterator[str]:
        if self._stream is None:
            return
        try:
            async for chunk in self._stream:
                choices = getattr(chunk, "choices", None) or []
                usage = getattr(chunk, "usage", None)
                if usage:
                    self._usage = Usage(
                        input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                        output_tokens=getattr(usage, "completion_tokens", 0) or 0,
                    )

                if not choices:
                    continue
                choice = choices[0]
                if getattr(choice, "finish_reason", None):
                    self._finish_reason = choice.finish_reason
                delta = getattr(choice, "delta", None)
                if not delta:
                    continue
                tool_deltas = getattr(delta, "tool_calls", None)
                if tool_deltas:
                    self._absorb_tool_deltas(tool_deltas)
                text = getattr(delta, "content", None)
                if text:
                    self._text_parts.append(text)
                    yield text
        except openai.APIError as exc:
            log_service.log_llm_call(model=self._model, caller=self._caller, status="error", error=str(exc))
            raise ProviderError(f"LLM stream interrupted: {exc}") from exc
        self._finished = True
        log_service.log_llm_call(
            model=self._model,
            caller=self._caller,
            input_tokens=self._usage.input_tokens,
            output_tokens=self._usage.output_tokens,
            duration_ms=int((time.monotonic() - self._started) * 1000),
        )

    @property
    def text_stream(self) -> AsyncIterator[str]:
        return self._iter_text()

    async def get_final_message(self) -> MessageResponse:
        if not self._finished:
            async for _ in self.text_stream:
                pass
        content: list[Any] = []
        text = "".join(self._text_parts)
        if text:
            content.append(TextBlock(type="text", text=text))
        for index in sorted(self._tool_calls):
            slot = self._tool_calls[index]
            content.append(
                ToolUseBlock(
                    type="tool_use",
                    id=slot["id"] or f"call_{index}",
                    name=slot["name"],
                    input=_parse_arguments(slot["arguments"]),
                )
            )
        return MessageResponse(content=content, usage=self._usage, finish_reason=self._finish_reason)


class LLMClient:
    """Chat-completions client exposing the three call shapes the engine uses."""

    def __init__(
        self,
        openai_client: Any,
        *,
        model: str,
        provider_name: str,
    ):
        self._client = openai_client
        self.model = model
        self.provider_name = provider_name

    @staticmethod
    def _temperature_for_model(model: str) -> int:
        # Some OpenAI GPT-5-compatible gateways reject temperature=0.
        lowered = (model or "").lower()
        if "gpt-5" in lowered:
            return 1
        return 0

    @staticmethod
    def _user_parts(blocks: list[dict[str, Any]]) -> list[dict[str, Any]]:
        parts: list[dict[str, Any]] = []
        for block in blocks:
            btype = block.get("type")
            if btype == "text":
                parts.append({"type": "text", "text": block.get("text", "")})
            elif btype == "image":
                encoded = base64.b64encode(block["data"]).decode("ascii")
                parts.append(
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{block.get('media_type', 'image/png')};base64,{encoded}"},
                    }
                )
        return parts

    def _to_openai_messages(self, system: str, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        openai_messages: list[dict[str, Any]] = [{"role": "system", "content": system}]

        for message in messages:
            role = message["role"]
            content = message["content"]

            if isinstance(content, str):
                openai_messages.append({"role": role, "content": content})
                continue

            if role == "assistant" and isinstance(content, list):
                text_parts: list[str] = []
                tool_calls: list[dict[str, Any]] = []
                for block in content:
                    get = block.get if isinstance(block, dict) else lambda key, b=block: getattr(b, key, None)
                    btype = get("type")
                    if btype == "text" and get("text"):
                        text_parts.append(get("text"))
                    elif btype == "tool_use":
                        tool_calls.append(
                            {
                                "id": get("id"),
                                "type": "function",
                                "function": {"name": get("name"), "arguments": json.dumps(get("input") or {})},
                            }
                        )
                msg: dict[str, Any] = {"role": "assistant"}
                msg["content"] = "\n".join(text_parts) if text_parts else None
                if tool_calls:
                    msg["tool_calls"] = tool_calls
                openai_messages.append(msg)
                continue

            if role == "user" and isinstance(content, list):
                tool_results = [b for b in content if b.get("type") == "tool_result"]
                if not tool_results:
                    openai_messages.append({"role": "user", "content": self._user_parts(content)})
                    continue
                for tool_result in tool_results:
                    tool_content = str(tool_result.get("content", ""))
                    if tool_result.get("is_error"):
                        tool_content = f"ERROR: {tool_content}"
                    openai_messages.append(
                        {
                            "role": "tool",
                            "tool_call_id": tool_result.get("tool_use_id", ""),
                            "content": tool_content,
                        }
                    )
                continue

            openai_messages.append({"role": role, "content": str(content)})

        return openai_messages

    def _to_openai_tools(self, tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": t["name"],
                    "description": t.get("description", ""),
                    "parameters": t.get("input_schema", {"type": "object", "properties": {}}),
                },
            }
            for t in tools
        ]

    def _from_openai_response(self, response: Any) -> MessageResponse:
        choice = response.choices[0]
        message = choice.message
        content: list[Any] = []

        text = getattr(message, "content", None)
        if text:
            content.append(TextBlock(type="text", text=text))

        for tc in getattr(message, "tool_calls", []) or []:
            content.append(
                ToolUseBlock(
                    type="tool_use",
                    id=tc.id,
                    name=tc.function.name,
                    input=_parse_arguments(getattr(tc.function, "arguments", None)),
                )
            )

        usage = getattr(response, "usage", None)
        mapped_usage = Usage(
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )

        return MessageResponse(
            content=content,
            usage=mapped_usage,
            finish_reason=getattr(choice, "finish_reason", None),
        )

    def _request_kwargs(
        self,
        system: str,
        messages: list[dict[str, Any]],
        options: ChatOptions,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": self._to_openai_messages(system, messages),
            "max_tokens": options.max_output_tokens,
            "temperature": (
                options.temperature
                if options.temperature is not None
                else self._temperature_for_model(self.model)
            ),
        }
        if options.tools:
            kwargs["tools"] = self._to_openai_tools(options.tools)
        if options.tools or options.tool_mode is not ToolMode.NONE:
            # Passthrough providers accept tool_choice without local tools.
            kwargs["tool_choice"] = options.tool_mode.value
        if options.json_schema is not None:
            kwargs["response_format"] = {"type": "json_schema", "json_schema": options.json_schema}
        return kwargs

    async def create(
        self,
        *,
        system: str,
        messages: list[dict[str, Any]],
        options: ChatOptions | None = None,
        caller: str = "create",
        **extra: Any,
    ) -> MessageResponse:
        kwargs = self._request_kwargs(system, messages, options or ChatOptions())
        kwargs.update(extra)

        t0 = time.monotonic()
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.APIError as exc:
            log_service.log_llm_call(model=self.model, caller=caller, status="error", error=str(exc))
            raise ProviderError(f"LLM request failed: {exc}", provider=self.provider_name) from exc

        mapped = self._from_openai_response(response)
        log_service.log_llm_call(
            model=self.model,
            caller=caller,
            input_tokens=mapped.usage.input_tokens,
            output_tokens=mapped.usage.output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return mapped

    async def call_structured(
        self,
        *,
        system: str,
        messages: list[dict[str, Any]],
        response_model: type[T],
        options: ChatOptions | None = None,
        caller: str = "structured",
    ) -> T:
        """Request schema-constrained JSON and validate it into ``response_model``."""
        options = options or ChatOptions()
        if options.json_schema is None:
            options = replace(options, json_schema=schema_for(response_model))
        response = await self.create(
            system=system,
            messages=messages,
            options=options,
            caller=caller,
        )
        text = response.text
        try:
            return response_model.model_validate_json(text)
        except ValidationError as exc:
            logger.error(f"Failed to parse structured LLM response as JSON. Response text: {preview(text)}")
            raise DeserializationError(
                f"Structured response does not match {response_model.__name__}: {exc}",
                text=text,
                extraction_method="structured",
            ) from exc

    def stream(
        self,
        *,
        system: str,
        messages: list[dict[str, Any]],
        options: ChatOptions | None = None,
        caller: str = "stream",
        cancel: asyncio.Event | None = None,
    ) -> LLMStream:
        """Open a streamed completion; ``cancel`` also aborts the request while it opens."""
        kwargs = self._request_kwargs(system, messages, options or ChatOptions())
        stream = self._client.chat.completions.create(
            **kwargs,
            stream=True,
            stream_options={"include_usage": True},
        )
        return LLMStream(stream, model=self.model, caller=caller, cancel=cancel)

    async def call_streaming(
        self,
        *,
        system: str,
        messages: list[dict[str, Any]],
        options: ChatOptions | None = None,
        caller: str = "stream",
    ) -> AsyncIterator[str]:
        async with self.stream(system=system, messages=messages, options=options, caller=caller) as s:
            async for text in s.text_stream:
                yield text


def get_client() -> LLMClient:
    """Build the configured client over the OpenAI SDK."""
    from openai import AsyncOpenAI

    base_url = settings.llm_base_url.strip() or "https://openrouter.ai/api/v1"
    openai_client = AsyncOpenAI(
        api_key=settings.llm_api_key,
        base_url=base_url,
        timeout=settings.llm_timeout_seconds,
    )
    return LLMClient(
        openai_client,
        model=settings.llm_model,
        provider_name=settings.llm_provider_name,
    )
