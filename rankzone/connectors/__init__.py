"""Market data connectors."""

from rankzone.connectors.rest_client import BinanceMarketClient
from rankzone.connectors.source import BinanceMetricSource, KlineSource, MetricSource
from rankzone.connectors.supply import SupplyDataLoader, SupplyRecord

__all__ = [
    "BinanceMarketClient",
    "BinanceMetricSource",
    "KlineSource",
    "MetricSource",
    "SupplyDataLoader",
    "SupplyRecord",
]
