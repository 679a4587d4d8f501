"""ccrouter

An LLM API gateway that routes Claude-style and OpenAI-style chat requests to
configurable providers, reshaping requests and responses through transformers.
"""

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("ccrouter")
except PackageNotFoundError:
    # Fallback for source checkouts that were never installed
    __version__ = "0.1.0"
__author__ = "ccrouter"
