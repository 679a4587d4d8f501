"""Wire-format constants shared by transformers, router and streaming code."""


class Constants:
    ROLE_USER = "user"
    ROLE_ASSISTANT = "assistant"
    ROLE_SYSTEM = "system"
    ROLE_TOOL = "tool"

    CONTENT_TEXT = "text"
    CONTENT_IMAGE = "image"
    CONTENT_TOOL_USE = "tool_use"
    CONTENT_TOOL_RESULT = "tool_result"
    CONTENT_THINKING = "thinking"

    TOOL_FUNCTION = "function"

    STOP_END_TURN = "end_turn"
    STOP_MAX_TOKENS = "max_tokens"
    STOP_TOOL_USE = "tool_use"

    EVENT_MESSAGE_START = "message_start"
    EVENT_MESSAGE_STOP = "message_stop"
    EVENT_MESSAGE_DELTA = "message_delta"
    EVENT_CONTENT_BLOCK_START = "content_block_start"
    EVENT_CONTENT_BLOCK_STOP = "content_block_stop"
    EVENT_CONTENT_BLOCK_DELTA = "content_block_delta"
    EVENT_PING = "ping"

    DELTA_TEXT = "text_delta"
    DELTA_INPUT_JSON = "input_json_delta"
    DELTA_THINKING = "thinking_delta"
    DELTA_SIGNATURE = "signature_delta"

    SSE_DONE = "[DONE]"

    # Router scenario types
    SCENARIO_DEFAULT = "default"
    SCENARIO_BACKGROUND = "background"
    SCENARIO_THINK = "think"
    SCENARIO_LONG_CONTEXT = "longContext"
    SCENARIO_WEB_SEARCH = "webSearch"

    SUBAGENT_TAG_OPEN = "<CCR-SUBAGENT-MODEL>"
    SUBAGENT_TAG_CLOSE = "</CCR-SUBAGENT-MODEL>"

    REASONING_TAG_OPEN = "<reasoning_content>"
    REASONING_TAG_CLOSE = "</reasoning_content>"
