from .card import Card, CardSet, PriceHistory, PriceUpdateLog
from .config import ConfigEntry

__all__ = [
    "Card",
    "CardSet",
    "PriceHistory",
    "PriceUpdateLog",
    "ConfigEntry",
]
