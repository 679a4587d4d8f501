from typing import Any

from ccrouter.transformers.base import Transformer


class MaxTokenTransformer(Transformer):
    """Caps ``max_tokens`` at the value bound through provider options.

    Configured as ``["maxtoken", {"max_tokens": 8192}]``.
    """

    name = "maxtoken"

    @property
    def max_tokens(self) -> int | None:
        value = self.options.get("max_tokens")
        return int(value) if value is not None else None

    async def transform_request_in(self, request, provider, context) -> dict[str, Any]:
        limit = self.max_tokens
        if limit is None:
            return request
        current = request.get("max_tokens")
        if current is None or current > limit:
            return {**request, "max_tokens": limit}
        return request
