"""Market-rate snapshots.

A snapshot is fetched as a unit and never mutated; the estimator receives it
explicitly. ``MarketRateProvider`` owns the refresh lifecycle: it caches one
snapshot per region and rebuilds it once the TTL has elapsed.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from src.config import settings
from src.estimation.schemas import MarketRateSnapshot
from src.shared.models import utcnow

logger = logging.getLogger(__name__)

REGIONAL_MULTIPLIERS: Dict[str, float] = {
    "London": 1.4,
    "South East": 1.2,
    "South West": 1.1,
    "East": 1.1,
    "West Midlands": 1.0,
    "East Midlands": 0.95,
    "Yorkshire": 0.9,
    "North West": 0.9,
    "North East": 0.85,
    "Wales": 0.9,
    "Scotland": 0.95,
    "Northern Ireland": 0.85,
}

QUALITY_MULTIPLIERS: Dict[str, float] = {
    "budget": 0.8,
    "standard": 1.0,
    "premium": 1.4,
    "luxury": 1.8,
}

# GBP per m2 of floor area, by project type and NRM1 element
ELEMENT_RATES: Dict[str, Dict[str, float]] = {
    "loft-conversion": {"facilitating-works": 50, "building-works": 1200, "building-services": 300, "external-works": 100},
    "rear-extension": {"facilitating-works": 75, "building-works": 1500, "building-services": 400, "external-works": 150},
    "side-extension": {"facilitating-works": 75, "building-works": 1400, "building-services": 350, "external-works": 125},
    "bathroom-renovation": {"facilitating-works": 25, "building-works": 800, "building-services": 600, "external-works": 50},
    "kitchen-renovation": {"facilitating-works": 30, "building-works": 900, "building-services": 500, "external-works": 50},
    "conservatory": {"facilitating-works": 40, "building-works": 1000, "building-services": 200, "external-works": 200},
    "garage-conversion": {"facilitating-works": 35, "building-works": 800, "building-services": 400, "external-works": 75},
    "basement-conversion": {"facilitating-works": 100, "building-works": 2000, "building-services": 500, "external-works": 150},
    "roof-replacement": {"facilitating-works": 60, "building-works": 300, "building-services": 100, "external-works": 50},
    "other": {"facilitating-works": 50, "building-works": 1000, "building-services": 300, "external-works": 100},
}

PROFESSIONAL_FEE_PERCENTAGES: Dict[str, float] = {
    "loft-conversion": 12,
    "rear-extension": 15,
    "side-extension": 15,
    "bathroom-renovation": 8,
    "kitchen-renovation": 8,
    "conservatory": 10,
    "garage-conversion": 10,
    "basement-conversion": 18,
    "roof-replacement": 10,
    "other": 12,
}

# Fallback unit rates (GBP) for draft items that arrive without a price
MATERIAL_RATES: Dict[str, float] = {
    "concrete": 120.0,     # m3
    "steel": 1800.0,       # tonne
    "timber": 450.0,       # m3
    "joist": 18.0,         # each
    "brick": 0.9,          # each
    "block": 2.5,          # each
    "plasterboard": 12.0,  # sheet
    "insulation": 14.0,    # m2
    "tile": 35.0,          # m2
    "membrane": 6.0,       # m2
    "window": 650.0,       # each
    "rooflight": 900.0,    # each
    "door": 350.0,         # each
    "slate": 45.0,         # m2
}


def build_default_snapshot(region: str, fetched_at: Optional[datetime] = None) -> MarketRateSnapshot:
    fetched_at = fetched_at or utcnow()
    return MarketRateSnapshot(
        snapshot_id=f"uk-default-{region.lower().replace(' ', '-')}-{fetched_at:%Y%m%d%H%M%S}",
        region=region,
        source="uk-default-rates",
        fetched_at=fetched_at,
        regional_multiplier=REGIONAL_MULTIPLIERS.get(region, 1.0),
        quality_multipliers=dict(QUALITY_MULTIPLIERS),
        element_rates={k: dict(v) for k, v in ELEMENT_RATES.items()},
        professional_fee_percentages=dict(PROFESSIONAL_FEE_PERCENTAGES),
        material_rates=dict(MATERIAL_RATES),
    )


class MarketRateProvider:
    """Per-region snapshot cache with TTL refresh.

    ``fetch`` is any callable returning a fresh snapshot for a region; the
    default builds the bundled UK rate tables.
    """

    def __init__(
        self,
        fetch: Callable[[str], MarketRateSnapshot] = build_default_snapshot,
        ttl_seconds: Optional[int] = None,
    ):
        self._fetch = fetch
        self._ttl = timedelta(seconds=ttl_seconds if ttl_seconds is not None else settings.MARKET_RATE_TTL_SECONDS)
        self._snapshots: Dict[str, MarketRateSnapshot] = {}
        self._lock = threading.Lock()

    def get_snapshot(self, region: str) -> MarketRateSnapshot:
        with self._lock:
            snapshot = self._snapshots.get(region)
            if snapshot is None or utcnow() - snapshot.fetched_at >= self._ttl:
                snapshot = self._fetch(region)
                self._snapshots[region] = snapshot
                logger.info(f"Refreshed market rates for {region} ({snapshot.snapshot_id})")
            return snapshot

    def invalidate(self) -> None:
        with self._lock:
            self._snapshots.clear()


_default_provider: Optional[MarketRateProvider] = None


def get_market_rate_provider() -> MarketRateProvider:
    global _default_provider
    if _default_provider is None:
        _default_provider = MarketRateProvider()
    return _default_provider
