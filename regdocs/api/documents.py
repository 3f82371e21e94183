"""Document lookup endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from ..core.errors import StoreError
from ..models.document import DocumentRecord
from ..services.metadata_store import MetadataStore
from .dependencies import get_store

router = APIRouter(prefix="/documents")


@router.get("/{document_id}", response_model=DocumentRecord)
async def get_document(document_id: str, store: MetadataStore = Depends(get_store)) -> DocumentRecord:
    try:
        record = await store.get(document_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    if record is None:
        raise HTTPException(status_code=404, detail=f"Document {document_id} not found")
    return record
