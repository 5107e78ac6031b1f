"""
OpenAI HTTP client helpers.

Used endpoint:
- POST /v1/chat/completions -> {"choices": [{"message": {...}}]}

Function calling uses the `functions` / `function_call` request fields; the
returned message may carry `function_call: {"name", "arguments"}`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from . import settings


# OpenAI failures are explicit and separable from other runtime errors.
class OpenAIError(RuntimeError):
    pass


@dataclass(frozen=True)
class FunctionCall:
    name: str
    arguments: str


@dataclass(frozen=True)
class ChatReply:
    content: str
    function_call: FunctionCall | None = None


def base_url() -> str:
    return settings.env_str("OPENAI_BASE_URL", "https://api.openai.com").rstrip("/")


def api_key() -> str:
    return settings.env_str("OPENAI_API_KEY")


def default_model() -> str:
    return settings.env_str("OPENAI_MODEL", "gpt-4")


def default_max_tokens() -> int:
    return settings.env_int("OPENAI_MAX_TOKENS", 2000)


def default_temperature() -> float:
    return settings.env_float("OPENAI_TEMPERATURE", 0.7)


def default_timeout_s() -> float:
    return settings.env_float("OPENAI_TIMEOUT_S", 60.0)


def _parse_reply(data: Any) -> ChatReply:
    if not isinstance(data, dict):
        raise OpenAIError("OpenAI returned an unexpected response shape.")
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise OpenAIError("OpenAI returned no choices.")

    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        raise OpenAIError("OpenAI returned no message.")

    content = message.get("content")
    content = content.strip() if isinstance(content, str) else ""

    call = message.get("function_call")
    function_call = None
    if isinstance(call, dict) and str(call.get("name") or "").strip():
        function_call = FunctionCall(
            name=str(call["name"]).strip(),
            arguments=str(call.get("arguments") or "{}"),
        )

    if not content and function_call is None:
        raise OpenAIError("OpenAI returned an empty chat response.")
    return ChatReply(content=content, function_call=function_call)


async def chat_completion(
    *,
    messages: list[dict[str, str]],
    functions: list[dict[str, Any]] | None = None,
    model: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    timeout_s: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ChatReply:
    """
    Generate one assistant message from a message list.
    """
    key = api_key()
    if not key:
        raise OpenAIError("OPENAI_API_KEY is not set.")
    if not messages:
        raise OpenAIError("Messages list is empty.")

    payload: dict[str, Any] = {
        "model": model or default_model(),
        "messages": messages,
        "max_tokens": max_tokens if max_tokens is not None else default_max_tokens(),
        "temperature": temperature if temperature is not None else default_temperature(),
    }
    if functions:
        payload["functions"] = functions
        payload["function_call"] = "auto"

    try:
        async with httpx.AsyncClient(
            base_url=base_url(),
            timeout=timeout_s or default_timeout_s(),
            headers={"Authorization": f"Bearer {key}"},
            transport=transport,
        ) as client:
            resp = await client.post("/v1/chat/completions", json=payload)
    except httpx.HTTPError as exc:
        raise OpenAIError(f"OpenAI request failed: {exc}") from exc

    if resp.status_code != 200:
        # Avoid dumping huge bodies; include a small snippet.
        body = resp.text[:500]
        raise OpenAIError(f"OpenAI chat request failed: {resp.status_code} {body}")

    try:
        data = resp.json()
    except ValueError as exc:
        raise OpenAIError(f"OpenAI returned a non-JSON response: {resp.text[:100]}") from exc
    return _parse_reply(data)


async def complete_text(
    *,
    system_prompt: str,
    user_prompt: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    reply = await chat_completion(
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        transport=transport,
    )
    return reply.content
