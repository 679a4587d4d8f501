"""RESPX-based HTTP mocking fixtures for testing.

This module provides reusable payloads for OpenAI Chat Completions, the
OpenAI Responses API and Anthropic Messages, plus RESPX routers for the
fake upstream providers used throughout the tests.
"""

import json

import httpx
import pytest
import respx

PROVIDER_A_URL = "https://provider-a.test/v1/chat/completions"
PROVIDER_B_URL = "https://provider-b.test/v1/chat/completions"
PROVIDER_C_URL = "https://provider-c.test/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.test/v1/messages"
RESPONSES_URL = "https://api.openai.test/v1/responses"


# === OpenAI Response Fixtures ===


@pytest.fixture
def openai_chat_completion():
    """Standard OpenAI chat completion response."""
    return {
        "id": "chatcmpl-123",
        "object": "chat.completion",
        "created": 1677652288,
        "model": "gpt-4",
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": "Hello! How can I help you today?",
                },
                "finish_reason": "stop",
            }
        ],
        "usage": {
            "prompt_tokens": 10,
            "completion_tokens": 15,
            "total_tokens": 25,
        },
    }


@pytest.fixture
def openai_chat_completion_with_tool():
    """OpenAI chat completion with function calling."""
    return {
        "id": "chatcmpl-456",
        "object": "chat.completion",
        "created": 1677652288,
        "model": "gpt-4",
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {
                            "id": "call_123",
                            "type": "function",
                            "function": {
                                "name": "calculator",
                                "arguments": '{"expression": "2 + 2"}',
                            },
                        }
                    ],
                },
                "finish_reason": "tool_calls",
            }
        ],
        "usage": {
            "prompt_tokens": 50,
            "completion_tokens": 20,
            "total_tokens": 70,
        },
    }


@pytest.fixture
def openai_streaming_chunks():
    """OpenAI streaming response chunks."""
    return [
        b'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1677652288,"model":"gpt-4","choices":[{"index":0,"delta":{"role":"assistant","content":""},"finish_reason":null}]}\n\n',
        b'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1677652288,"model":"gpt-4","choices":[{"index":0,"delta":{"content":"Hello"},"finish_reason":null}]}\n\n',
        b'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1677652288,"model":"gpt-4","choices":[{"index":0,"delta":{"content":"!"},"finish_reason":null}]}\n\n',
        b'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1677652288,"model":"gpt-4","choices":[{"index":0,"delta":{},"finish_reason":"stop"}],"usage":{"prompt_tokens":12,"completion_tokens":2}}\n\n',
        b"data: [DONE]\n\n",
    ]


# === OpenAI Responses API Fixtures ===


@pytest.fixture
def responses_function_call_payload():
    """Non-streaming Responses API payload with a single function call."""
    return {
        "id": "resp_123",
        "object": "response",
        "created_at": 1700000000,
        "model": "gpt-5",
        "status": "completed",
        "output": [
            {
                "type": "function_call",
                "id": "fc_1",
                "call_id": "call_abc",
                "name": "get_weather",
                "arguments": '{"city": "Paris"}',
            }
        ],
        "usage": {"input_tokens": 30, "output_tokens": 8, "total_tokens": 38},
    }


# === Anthropic Response Fixtures ===


@pytest.fixture
def anthropic_message_response():
    """Standard Anthropic message response."""
    return {
        "id": "msg_test123",
        "type": "message",
        "role": "assistant",
        "content": [{"type": "text", "text": "Hello! How can I help you today?"}],
        "model": "claude-3-5-sonnet-20241022",
        "stop_reason": "end_turn",
        "stop_sequence": None,
        "usage": {
            "input_tokens": 10,
            "output_tokens": 15,
        },
    }


@pytest.fixture
def anthropic_streaming_events():
    """Anthropic streaming SSE events."""
    return [
        b'event: message_start\ndata: {"type":"message_start","message":{"id":"msg_test123","type":"message","role":"assistant","content":[],"model":"claude-3-5-sonnet-20241022","usage":{"input_tokens":10,"output_tokens":0}}}\n\n',
        b'event: content_block_start\ndata: {"type":"content_block_start","index":0,"content_block":{"type":"text","text":""}}\n\n',
        b'event: content_block_delta\ndata: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hello"}}\n\n',
        b'event: content_block_delta\ndata: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"!"}}\n\n',
        b'event: content_block_stop\ndata: {"type":"content_block_stop","index":0}\n\n',
        b'event: message_delta\ndata: {"type":"message_delta","delta":{"stop_reason":"end_turn"},"usage":{"output_tokens":15}}\n\n',
        b'event: message_stop\ndata: {"type":"message_stop"}\n\n',
    ]


@pytest.fixture
def anthropic_request():
    """Minimal Anthropic Messages request body."""
    return {
        "model": "claude-sonnet-4",
        "max_tokens": 256,
        "messages": [{"role": "user", "content": "Hello there"}],
    }


# === RESPX Mock Fixtures ===


@pytest.fixture
def mock_providers():
    """Mock every fake upstream provider with RESPX.

    Yields a RESPX router; tests register routes for the provider URLs
    defined at the top of this module.

    Example:
        def test_chat(mock_providers, openai_chat_completion):
            mock_providers.post(PROVIDER_A_URL).mock(
                return_value=httpx.Response(200, json=openai_chat_completion)
            )
    """
    with respx.mock(assert_all_called=False) as respx_mock:
        yield respx_mock


# === Helper Functions ===


def create_openai_error(status_code: int, error_type: str, message: str) -> dict:
    """Create an OpenAI-formatted error response body."""
    return {
        "error": {
            "message": message,
            "type": error_type,
            "code": status_code,
        }
    }


def create_streaming_response(chunks: list[bytes], status_code: int = 200) -> httpx.Response:
    """Create a streaming HTTP response from chunks."""
    return httpx.Response(
        status_code=status_code,
        headers={"content-type": "text/event-stream"},
        content=b"".join(chunks),
    )


async def achunks(chunks):
    """Async iterator over a list of chunks."""
    for chunk in chunks:
        yield chunk


def parse_sse(text: str) -> list[tuple[str | None, object]]:
    """Split SSE text into ``(event, data)`` pairs, decoding JSON data."""
    events: list[tuple[str | None, object]] = []
    for block in text.split("\n\n"):
        if not block.strip():
            continue
        event = None
        data_lines = []
        for line in block.split("\n"):
            if line.startswith("event:"):
                event = line[len("event:") :].strip()
            elif line.startswith("data:"):
                data_lines.append(line[len("data:") :].strip())
        data = "\n".join(data_lines)
        try:
            events.append((event, json.loads(data)))
        except ValueError:
            events.append((event, data))
    return events
