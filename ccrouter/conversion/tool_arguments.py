import json
import logging
from typing import Any

import json5
from json_repair import repair_json

logger = logging.getLogger(__name__)

EMPTY_ARGUMENTS = "{}"


def parse_tool_arguments(raw: Any) -> str:
    """Normalize model-produced tool arguments into a JSON string.

    Tries strict JSON, then JSON5 (single quotes, trailing commas...), then
    json-repair. Returns ``"{}"`` when nothing can make sense of the input;
    never raises. Already-decoded arguments (a dict from some providers) are
    re-encoded as JSON.
    """
    if raw is not None and not isinstance(raw, str):
        try:
            return json.dumps(raw, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error(f"Tool arguments are not JSON-serializable: {e}")
            return EMPTY_ARGUMENTS

    if not raw or not raw.strip() or raw == EMPTY_ARGUMENTS:
        return EMPTY_ARGUMENTS

    try:
        json.loads(raw)
        return raw
    except ValueError as json_error:
        strict_error = json_error

    try:
        return json.dumps(json5.loads(raw), ensure_ascii=False)
    except Exception as e:
        json5_error = e

    try:
        repaired = repair_json(raw)
        if isinstance(repaired, str) and repaired.strip():
            json.loads(repaired)
            logger.debug("Tool arguments repaired")
            return repaired
        repair_error: Exception = ValueError("repair produced no output")
    except Exception as e:
        repair_error = e

    logger.error(
        f"JSON parsing failed: {strict_error}. JSON5 parsing failed: {json5_error}. "
        f"JSON repair failed: {repair_error}. Input data: {json.dumps(raw)}"
    )
    return EMPTY_ARGUMENTS


def load_tool_arguments(raw: Any) -> dict:
    """Parse arguments into a dict for ``tool_use.input``."""
    value = json.loads(parse_tool_arguments(raw))
    return value if isinstance(value, dict) else {"value": value}
