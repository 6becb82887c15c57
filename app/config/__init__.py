"""Configuration package."""

from app.config.pricing import (
    PRICING,
    PriceCatalog,
    PricingConfig,
    PricingTier,
    calculate_total_cost,
    calculate_variable_cost,
    format_price,
    get_price_catalog,
    resolve_tier,
)
from app.config.settings import Settings, settings

__all__ = [
    "PRICING",
    "PriceCatalog",
    "PricingConfig",
    "PricingTier",
    "calculate_total_cost",
    "calculate_variable_cost",
    "format_price",
    "get_price_catalog",
    "resolve_tier",
    "Settings",
    "settings",
]
