import asyncio
import logging
from typing import Any

import tiktoken

from ccrouter.tokenizer.base import Tokenizer, iter_request_texts

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"


class TiktokenTokenizer(Tokenizer):
    """In-memory BPE counting with a tiktoken encoding."""

    type = "tiktoken"

    def __init__(self, encoding_name: str = DEFAULT_ENCODING) -> None:
        self.encoding_name = encoding_name
        self._encoding: tiktoken.Encoding | None = None

    @property
    def name(self) -> str:
        return f"tiktoken-{self.encoding_name}"

    async def initialize(self) -> None:
        if self._encoding is not None:
            return
        try:
            # First use may download the BPE ranks
            self._encoding = await asyncio.to_thread(tiktoken.get_encoding, self.encoding_name)
        except Exception as e:
            raise RuntimeError(
                f"Failed to initialize tiktoken encoding: {self.encoding_name}"
            ) from e
        logger.debug(f"Loaded tiktoken encoding {self.encoding_name}")

    @property
    def is_initialized(self) -> bool:
        return self._encoding is not None

    @property
    def supports_encode(self) -> bool:
        return self._encoding is not None

    def _require_encoding(self) -> tiktoken.Encoding:
        if self._encoding is None:
            raise RuntimeError("Encoding not initialized")
        return self._encoding

    def encode_text(self, text: str) -> list[int]:
        return self._require_encoding().encode(text, disallowed_special=())

    async def count_tokens(self, request: dict[str, Any]) -> int:
        encoding = self._require_encoding()
        return sum(
            len(encoding.encode(text, disallowed_special=())) for text in iter_request_texts(request)
        )

    def dispose(self) -> None:
        self._encoding = None
