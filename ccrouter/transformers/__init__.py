"""Built-in transformers and their registration."""

from ccrouter.transformers.anthropic import AnthropicTransformer
from ccrouter.transformers.base import Transformer, TransformResult
from ccrouter.transformers.cerebras import CerebrasTransformer
from ccrouter.transformers.forcereasoning import ForceReasoningTransformer
from ccrouter.transformers.maxtoken import MaxTokenTransformer
from ccrouter.transformers.openai import OpenAITransformer
from ccrouter.transformers.openai_responses import OpenAIResponsesTransformer
from ccrouter.transformers.registry import TransformerRegistry

BUILTIN_TRANSFORMERS: tuple[type[Transformer], ...] = (
    AnthropicTransformer,
    OpenAITransformer,
    OpenAIResponsesTransformer,
    ForceReasoningTransformer,
    CerebrasTransformer,
    MaxTokenTransformer,
)


def register_builtin_transformers(registry: TransformerRegistry) -> TransformerRegistry:
    for transformer_cls in BUILTIN_TRANSFORMERS:
        registry.register(transformer_cls)
    return registry


__all__ = [
    "BUILTIN_TRANSFORMERS",
    "Transformer",
    "TransformResult",
    "TransformerRegistry",
    "register_builtin_transformers",
]
