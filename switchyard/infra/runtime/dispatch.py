"""
Task Dispatch — Task Type → Backend Operation
===============================================

Shared by the façade and the pipeline executor:

  reasoning / default → chat_completion(input["messages"])
  embedding           → generate_embeddings([input["text"]])
  vision              → chat_with_image(input["text"], input["image"])

Plus the rough token estimate used for cost records (ceil(chars / 4)).
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from typing import Any

from switchyard.core.types import TaskType
from switchyard.infra.runtime.backends import ChatMessage, ModelBackend
from switchyard.registry.entries import TokenUsage

CHARS_PER_TOKEN = 4

def as_messages(payload: Any) -> list[ChatMessage]:
    """Messages from a task input; a bare string becomes one user turn."""
    if isinstance(payload, str):
        return [{"role": "user", "content": payload}]
    if isinstance(payload, Mapping):
        return list(payload.get("messages") or [])
    return []

async def dispatch(
    backend: ModelBackend,
    task: str,
    payload: Any,
    **options: Any,
) -> Any:
    """Run one task against a backend and return its raw result."""
    options = {k: v for k, v in options.items() if v is not None}
    fields = payload if isinstance(payload, Mapping) else {}

    if task == TaskType.EMBEDDING:
        text = fields.get("text", payload if isinstance(payload, str) else "")
        if isinstance(text, list):
            return await backend.generate_embeddings(text, **options)
        vectors = await backend.generate_embeddings([text], **options)
        return vectors[0] if vectors else []

    if task == TaskType.VISION:
        return await backend.chat_with_image(fields.get("text", ""), fields.get("image"), **options)

    return await backend.chat_completion(as_messages(payload), **options)

# ── Token Estimation ─────────────────────────────────────────────────

def estimate_text_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)

def estimate_tokens(messages: list[ChatMessage]) -> int:
    total = 0
    for message in messages:
        content = message.get("content", "")
        if not isinstance(content, str):
            content = json.dumps(content, default=str)
        total += estimate_text_tokens(content)
    return total

def estimate_usage(payload: Any, result: Any) -> TokenUsage:
    """Estimated input/output tokens for one dispatched task."""
    messages = as_messages(payload)
    if messages:
        input_tokens = estimate_tokens(messages)
    elif isinstance(payload, Mapping) and isinstance(payload.get("text"), str):
        input_tokens = estimate_text_tokens(payload["text"])
    else:
        input_tokens = 0
    output_tokens = estimate_text_tokens(result) if isinstance(result, str) else 0
    return TokenUsage(input=input_tokens, output=output_tokens)
