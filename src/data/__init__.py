"""Market tables and pool construction."""

from src.data.pool_factory import create_pool

__all__ = ["create_pool"]
