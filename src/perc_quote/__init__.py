"""Percolator quote - spread pricing and best-price aggregation."""
from loguru import logger

from .pricing import Quote, PricingError, NoVenuesError, compute_quote
from .aggregate import BestPrice, VenueQuote, best_price

logger.disable("perc_quote")

__all__ = [
    "Quote", "PricingError", "NoVenuesError", "compute_quote",
    "BestPrice", "VenueQuote", "best_price",
]
