"""Cheap pre-filter that drops references whose URL is already ingested."""

from dataclasses import dataclass, field
from typing import Iterable, List

from ..core.logging import get_logger
from ..models.document import DocumentReference
from .metadata_store import MetadataStore

logger = get_logger(__name__)


@dataclass
class FilterResult:
    """References worth downloading, in the order they were discovered."""
    new: List[DocumentReference] = field(default_factory=list)
    known: int = 0
    repeated: int = 0


class DedupIndex:
    """URL pre-filter backed by the metadata store.

    A miss only means "worth downloading"; the content check and the store's
    unique constraints make the authoritative decision later.
    """

    def __init__(self, store: MetadataStore):
        self.store = store

    async def filter_new(self, references: Iterable[DocumentReference]) -> FilterResult:
        """Split ``references`` using one batched existence query.

        Raises ``StoreError`` when the store is unreachable.
        """
        references = list(references)
        result = FilterResult()
        if not references:
            return result

        existing = await self.store.existing_urls(ref.source_url for ref in references)

        seen = set()
        for reference in references:
            if reference.source_url in existing:
                result.known += 1
            elif reference.source_url in seen:
                result.repeated += 1
            else:
                seen.add(reference.source_url)
                result.new.append(reference)

        logger.debug(
            "Pre-filtered references",
            total=len(references),
            new=len(result.new),
            known=result.known,
            repeated=result.repeated,
        )
        return result
