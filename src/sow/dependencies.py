from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.agents.sow.client import GenerationClient, get_generation_client
from src.briefs.context import CouncilDataLookup, DocumentStore
from src.database import get_db
from src.estimation.market_rates import MarketRateProvider, get_market_rate_provider
from src.sow.repository import SoWRepository
from src.sow.service import SoWGenerationService


def get_council_lookup() -> Optional[CouncilDataLookup]:
    """No council data service is wired in by default."""
    return None


def get_document_store() -> Optional[DocumentStore]:
    """No document store is wired in by default."""
    return None


def get_sow_service(
    db: AsyncSession = Depends(get_db),
    client: GenerationClient = Depends(get_generation_client),
    rate_provider: MarketRateProvider = Depends(get_market_rate_provider),
) -> SoWGenerationService:
    return SoWGenerationService(SoWRepository(db), client, rate_provider)
