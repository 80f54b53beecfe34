"""
Motor de seguimiento de precios.

Reconciliación de listings, snapshots mensuales, tendencia y la
fachada PriceTracker que los orquesta.
"""

from tasador.tracking.aggregator import (
    Aggregator,
    PriceSummary,
    TrendCalculator,
    summarize_prices,
)
from tasador.tracking.engine import PriceTracker, RefreshOutcome
from tasador.tracking.reconciler import Reconciler, ReconcileResult

__all__ = [
    "Aggregator",
    "PriceSummary",
    "TrendCalculator",
    "summarize_prices",
    "PriceTracker",
    "RefreshOutcome",
    "Reconciler",
    "ReconcileResult",
]
