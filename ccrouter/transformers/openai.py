from ccrouter.transformers.base import Transformer


class OpenAITransformer(Transformer):
    """Chat Completions endpoint; the unified shape already is its wire format."""

    name = "openai"
    end_point = "/v1/chat/completions"
