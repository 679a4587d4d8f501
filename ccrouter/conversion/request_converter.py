"""Anthropic Messages request -> unified (Chat Completions shaped) request."""

import json
import logging
from typing import Any

from ccrouter.core.constants import Constants

logger = logging.getLogger(__name__)

# Passed through to the unified request unchanged
_PASSTHROUGH_FIELDS = ("model", "max_tokens", "temperature", "top_p", "stream", "metadata")


def think_level(budget_tokens: int | None) -> str:
    """Map an Anthropic thinking budget onto a reasoning effort."""
    if not budget_tokens or budget_tokens <= 0:
        return "none"
    if budget_tokens <= 1024:
        return "low"
    if budget_tokens <= 8192:
        return "medium"
    return "high"


def _is_tool_result_message(msg: dict[str, Any]) -> bool:
    content = msg.get("content")
    return (
        msg.get("role") == Constants.ROLE_USER
        and isinstance(content, list)
        and any(
            isinstance(block, dict) and block.get("type") == Constants.CONTENT_TOOL_RESULT
            for block in content
        )
    )


def convert_system(system: Any) -> dict[str, Any] | None:
    if not system:
        return None
    if isinstance(system, str):
        return {"role": Constants.ROLE_SYSTEM, "content": system}
    parts = []
    for block in system:
        if isinstance(block, dict) and block.get("type") == Constants.CONTENT_TEXT:
            part: dict[str, Any] = {"type": "text", "text": block.get("text") or ""}
            if block.get("cache_control"):
                part["cache_control"] = block["cache_control"]
            parts.append(part)
    return {"role": Constants.ROLE_SYSTEM, "content": parts} if parts else None


def convert_image_block(block: dict[str, Any]) -> dict[str, Any] | None:
    source = block.get("source")
    if not isinstance(source, dict):
        return None
    if source.get("type") == "base64" and "media_type" in source and "data" in source:
        url = f"data:{source['media_type']};base64,{source['data']}"
    elif source.get("type") == "url" and source.get("url"):
        url = source["url"]
    else:
        return None
    return {"type": "image_url", "image_url": {"url": url}, "media_type": source.get("media_type")}


def convert_user_message(msg: dict[str, Any]) -> dict[str, Any] | None:
    content = msg.get("content")
    if content is None:
        return {"role": Constants.ROLE_USER, "content": ""}
    if isinstance(content, str):
        return {"role": Constants.ROLE_USER, "content": content}

    parts: list[dict[str, Any]] = []
    for block in content:
        block_type = block.get("type")
        if block_type == Constants.CONTENT_TEXT:
            part: dict[str, Any] = {"type": "text", "text": block.get("text") or ""}
            if block.get("cache_control"):
                part["cache_control"] = block["cache_control"]
            parts.append(part)
        elif block_type == Constants.CONTENT_IMAGE:
            image = convert_image_block(block)
            if image:
                parts.append(image)

    if not parts:
        return None
    if len(parts) == 1 and parts[0]["type"] == "text" and "cache_control" not in parts[0]:
        return {"role": Constants.ROLE_USER, "content": parts[0]["text"]}
    return {"role": Constants.ROLE_USER, "content": parts}


def convert_assistant_message(msg: dict[str, Any]) -> dict[str, Any]:
    content = msg.get("content")
    if content is None or isinstance(content, str):
        return {"role": Constants.ROLE_ASSISTANT, "content": content or ""}

    text_parts: list[str] = []
    tool_calls: list[dict[str, Any]] = []
    thinking: dict[str, Any] | None = None
    for block in content:
        block_type = block.get("type")
        if block_type == Constants.CONTENT_TEXT:
            text_parts.append(block.get("text") or "")
        elif block_type == Constants.CONTENT_TOOL_USE:
            tool_calls.append(
                {
                    "id": block.get("id"),
                    "type": Constants.TOOL_FUNCTION,
                    Constants.TOOL_FUNCTION: {
                        "name": block.get("name"),
                        "arguments": json.dumps(block.get("input") or {}, ensure_ascii=False),
                    },
                }
            )
        elif block_type == Constants.CONTENT_THINKING:
            thinking = {"content": block.get("thinking") or "", "signature": block.get("signature")}

    message: dict[str, Any] = {"role": Constants.ROLE_ASSISTANT, "content": "".join(text_parts)}
    if tool_calls:
        message["tool_calls"] = tool_calls
    if thinking:
        message["thinking"] = thinking
    return message


def parse_tool_result_content(content: Any) -> str:
    """Normalize tool result content into a string."""
    if content is None:
        return "No content provided"
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        result_parts = []
        for item in content:
            if isinstance(item, str):
                result_parts.append(item)
            elif isinstance(item, dict) and "text" in item:
                result_parts.append(item.get("text") or "")
            elif isinstance(item, dict):
                result_parts.append(json.dumps(item, ensure_ascii=False))
        return "\n".join(result_parts).strip()
    if isinstance(content, dict) and content.get("type") == Constants.CONTENT_TEXT:
        return str(content.get("text") or "")
    return json.dumps(content, ensure_ascii=False)


def convert_tool_results(msg: dict[str, Any]) -> list[dict[str, Any]]:
    return [
        {
            "role": Constants.ROLE_TOOL,
            "tool_call_id": block.get("tool_use_id"),
            "content": parse_tool_result_content(block.get("content")),
        }
        for block in msg.get("content") or []
        if isinstance(block, dict) and block.get("type") == Constants.CONTENT_TOOL_RESULT
    ]


def convert_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    converted = []
    for tool in tools:
        if (tool.get("type") or "").startswith("web_search"):
            # Server tools keep their Anthropic definition for the router and providers
            converted.append(dict(tool))
            continue
        converted.append(
            {
                "type": Constants.TOOL_FUNCTION,
                Constants.TOOL_FUNCTION: {
                    "name": tool.get("name"),
                    "description": tool.get("description") or "",
                    "parameters": tool.get("input_schema") or {"type": "object", "properties": {}},
                },
            }
        )
    return converted


def convert_tool_choice(tool_choice: Any) -> Any:
    if not isinstance(tool_choice, dict):
        return tool_choice
    choice_type = tool_choice.get("type")
    if choice_type == "tool" and tool_choice.get("name"):
        return {"type": Constants.TOOL_FUNCTION, Constants.TOOL_FUNCTION: {"name": tool_choice["name"]}}
    if choice_type == "any":
        return "required"
    return choice_type or "auto"


def convert_anthropic_to_unified(request: dict[str, Any]) -> dict[str, Any]:
    """Convert an Anthropic Messages body into the unified request shape."""
    unified: dict[str, Any] = {k: request[k] for k in _PASSTHROUGH_FIELDS if k in request}
    messages: list[dict[str, Any]] = []

    system_message = convert_system(request.get("system"))
    if system_message:
        messages.append(system_message)

    for msg in request.get("messages") or []:
        role = msg.get("role")
        if role == Constants.ROLE_ASSISTANT:
            messages.append(convert_assistant_message(msg))
        elif _is_tool_result_message(msg):
            messages.extend(convert_tool_results(msg))
            # Text blocks alongside tool results become a trailing user turn
            rest = [b for b in msg["content"] if b.get("type") != Constants.CONTENT_TOOL_RESULT]
            if rest:
                user = convert_user_message({**msg, "content": rest})
                if user:
                    messages.append(user)
        elif role == Constants.ROLE_USER:
            user = convert_user_message(msg)
            if user:
                messages.append(user)
        else:
            logger.debug(f"Dropping message with unsupported role: {role}")

    unified["messages"] = messages

    if request.get("stop_sequences"):
        unified["stop"] = request["stop_sequences"]
    if request.get("tools"):
        unified["tools"] = convert_tools(request["tools"])
    if request.get("tool_choice") is not None:
        unified["tool_choice"] = convert_tool_choice(request["tool_choice"])

    thinking = request.get("thinking")
    if isinstance(thinking, dict):
        unified["reasoning"] = {
            "effort": think_level(thinking.get("budget_tokens")),
            "enabled": thinking.get("type") == "enabled",
        }
    return unified
