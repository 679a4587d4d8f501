"""OpenAI Responses API adapter (``/v1/responses``)."""

from __future__ import annotations

import copy
import logging
from typing import Any

import httpx

from ccrouter.core.constants import Constants
from ccrouter.streaming.responses import (
    convert_response_to_chat,
    convert_responses_stream,
    is_responses_payload,
)
from ccrouter.transformers.base import (
    Transformer,
    is_event_stream,
    iter_body,
    json_response,
    passthrough_headers,
    read_json,
    stream_response,
)

logger = logging.getLogger(__name__)

EDIT_REQUIRED_FIELDS = ["file_path", "old_string", "new_string", "replace_all"]


def normalize_content_part(part: dict[str, Any], role: str | None) -> dict[str, Any] | None:
    """Map a chat content part onto Responses input/output parts; drops cache_control."""
    assistant = role == Constants.ROLE_ASSISTANT
    if part.get("type") == "text":
        return {"type": "output_text" if assistant else "input_text", "text": part.get("text")}
    if part.get("type") == "image_url":
        image: dict[str, Any] = {"type": "output_image" if assistant else "input_image"}
        url = (part.get("image_url") or {}).get("url")
        if isinstance(url, str):
            image["image_url"] = url
        return image
    return None


def convert_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    def fn_name(tool: dict[str, Any]) -> str | None:
        return (tool.get(Constants.TOOL_FUNCTION) or {}).get("name")

    has_web_search = any(fn_name(tool) == "web_search" for tool in tools)
    converted: list[dict[str, Any]] = []
    for tool in tools:
        function = tool.get(Constants.TOOL_FUNCTION)
        if function is None or function.get("name") == "web_search":
            continue
        parameters = copy.deepcopy(function.get("parameters") or {})
        if function.get("name") == "WebSearch":
            (parameters.get("properties") or {}).pop("allowed_domains", None)
        entry: dict[str, Any] = {
            "type": tool.get("type"),
            "name": function.get("name"),
            "description": function.get("description"),
            "parameters": parameters,
        }
        if function.get("name") == "Edit":
            entry["parameters"] = {**parameters, "required": list(EDIT_REQUIRED_FIELDS)}
            entry["strict"] = True
        converted.append(entry)

    if has_web_search:
        converted.append({"type": "web_search"})
    return converted


def convert_chat_to_responses(request: dict[str, Any]) -> dict[str, Any]:
    body = copy.deepcopy(request)
    body.pop("temperature", None)
    body.pop("max_tokens", None)

    if body.get("reasoning"):
        body["reasoning"] = {"effort": body["reasoning"].get("effort"), "summary": "detailed"}

    messages: list[dict[str, Any]] = body.pop("messages", None) or []
    input_items: list[dict[str, Any]] = []

    first_system = next((m for m in messages if m.get("role") == Constants.ROLE_SYSTEM), None)
    if first_system is not None:
        content = first_system.get("content")
        if isinstance(content, list):
            for item in content:
                text = item if isinstance(item, str) else (item or {}).get("text", "")
                input_items.append({"role": Constants.ROLE_SYSTEM, "content": text})
        else:
            body["instructions"] = content

    for message in messages:
        role = message.get("role")
        if role == Constants.ROLE_SYSTEM:
            continue

        if isinstance(message.get("content"), list):
            parts = [normalize_content_part(p, role) for p in message["content"]]
            parts = [p for p in parts if p is not None]
            if parts:
                message["content"] = parts
            else:
                del message["content"]

        if role == Constants.ROLE_TOOL:
            input_items.append(
                {
                    "type": "function_call_output",
                    "call_id": message.get("tool_call_id"),
                    "output": message.get("content"),
                }
            )
            continue

        if role == Constants.ROLE_ASSISTANT and isinstance(message.get("tool_calls"), list):
            for call in message["tool_calls"]:
                function = call.get(Constants.TOOL_FUNCTION) or {}
                input_items.append(
                    {
                        "type": "function_call",
                        "arguments": function.get("arguments"),
                        "name": function.get("name"),
                        "call_id": call.get("id"),
                    }
                )
            continue

        input_items.append(message)

    body["input"] = input_items
    if isinstance(body.get("tools"), list):
        body["tools"] = convert_tools(body["tools"])
    body["parallel_tool_calls"] = False
    return body


class OpenAIResponsesTransformer(Transformer):
    name = "openai-responses"
    end_point = "/v1/responses"

    async def transform_request_in(self, request, provider, context) -> dict[str, Any]:
        return convert_chat_to_responses(request)

    async def transform_response_out(self, response: httpx.Response, context) -> httpx.Response:
        headers = passthrough_headers(response)
        content_type = response.headers.get("content-type", "")
        if is_event_stream(response):
            return stream_response(
                convert_responses_stream(iter_body(response)),
                status_code=response.status_code,
                headers=headers,
            )
        if "application/json" not in content_type:
            return response

        data = await read_json(response)
        if is_responses_payload(data):
            data = convert_response_to_chat(data)
        else:
            logger.debug(f"Upstream JSON is not a Responses payload (status {response.status_code})")
        return json_response(data, status_code=response.status_code, headers=headers)
