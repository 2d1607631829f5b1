"""MCM Snapshot - Upstream Clients"""

from .base_client import BaseQuoteClient, FetchError, QuoteData, SeriesData
from .openai_client import OpenAIChatClient
from .twelvedata_client import TwelveDataClient

__all__ = [
    "BaseQuoteClient",
    "FetchError",
    "QuoteData",
    "SeriesData",
    "OpenAIChatClient",
    "TwelveDataClient",
]
