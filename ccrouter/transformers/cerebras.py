import copy
from typing import Any

from ccrouter.transformers.base import Transformer, TransformResult


class CerebrasTransformer(Transformer):
    name = "cerebras"

    async def transform_request_in(self, request, provider, context) -> TransformResult:
        body: dict[str, Any] = copy.deepcopy(request)
        if body.get("reasoning"):
            del body["reasoning"]
        else:
            body["disable_reasoning"] = False
        return TransformResult(
            body=body,
            config={
                "headers": {
                    "Authorization": f"Bearer {provider.api_key}",
                    "Content-Type": "application/json",
                }
            },
        )
