"""Optional lookups that enrich a brief before generation.

Both collaborators live outside this service. A failed lookup is logged and
skipped; it never stops a generation.
"""

import logging
from typing import List, Optional, Protocol

from src.briefs.schemas import CouncilData, DocumentReference, GenerationRequest

logger = logging.getLogger(__name__)


class CouncilDataLookup(Protocol):
    async def lookup(self, postcode: str) -> Optional[CouncilData]:
        ...


class DocumentStore(Protocol):
    async def get_document_context(self, document_id: str) -> Optional[DocumentReference]:
        ...


async def resolve_brief_context(
    request: GenerationRequest,
    council_lookup: Optional[CouncilDataLookup] = None,
    document_store: Optional[DocumentStore] = None,
) -> GenerationRequest:
    """Fill in council data and document text the caller did not supply."""
    updates = {}

    postcode = request.property_address.postcode
    if request.council_data is None and council_lookup is not None and postcode:
        try:
            council = await council_lookup.lookup(postcode)
        except Exception as e:
            logger.warning(f"Council data lookup failed for {postcode}: {e}")
            council = None
        if council is not None:
            updates["council_data"] = council

    if document_store is not None and any(not d.extracted_text for d in request.documents):
        documents: List[DocumentReference] = []
        for doc in request.documents:
            if doc.extracted_text:
                documents.append(doc)
                continue
            try:
                stored = await document_store.get_document_context(doc.id)
            except Exception as e:
                logger.warning(f"Failed to retrieve document context for {doc.id}: {e}")
                stored = None
            documents.append(stored or doc)
        updates["documents"] = documents

    if not updates:
        return request
    return request.model_copy(update=updates)
