"""
Storage Tiers

Fast cache (Redis) and durable store (SQLAlchemy) adapters.
"""

from app.stores.durable_store import EarningStore, FundamentalStore, LogoStore, NewsStore
from app.stores.fast_cache import FastCache

__all__ = ["EarningStore", "FastCache", "FundamentalStore", "LogoStore", "NewsStore"]
