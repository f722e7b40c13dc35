"""Routers package."""

from .settlement_periods import router as settlement_periods_router

__all__ = ["settlement_periods_router"]
