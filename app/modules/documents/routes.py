from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form
from app.database.supabase_client import get_supabase
from app.modules.documents.schemas import DocumentResponse, DocumentType
from app.modules.documents.service import DocumentService
from app.core.dependencies import (
    require_permission, check_trade_access, get_access_cache, get_user_company_id, is_admin
)
from supabase import Client
from typing import List, Dict, Optional

router = APIRouter(prefix="/trades/{trade_id}/documents", tags=["documents"])


def get_document_service(supabase: Client = Depends(get_supabase)) -> DocumentService:
    return DocumentService(supabase)


@router.post("", response_model=DocumentResponse, status_code=201)
async def upload_document(
    trade_id: str,
    doc_type: DocumentType = Form(...),
    file: UploadFile = File(...),
    user_data: Dict = Depends(require_permission("documents:create")),
    service: DocumentService = Depends(get_document_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Attach an invoice, certificate, contract, bill of lading or verification file to a trade"""
    check_trade_access(trade_id, user_data, supabase, cache)
    company_id = get_user_company_id(user_data, supabase, cache)
    return await service.upload_document(trade_id, doc_type, file, user_data["id"], company_id)


@router.get("", response_model=List[DocumentResponse])
async def list_documents(
    trade_id: str,
    doc_type: Optional[DocumentType] = None,
    user_data: Dict = Depends(require_permission("documents:read")),
    service: DocumentService = Depends(get_document_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    check_trade_access(trade_id, user_data, supabase, cache)
    return service.list_documents(trade_id, doc_type)


@router.delete("/{document_id}")
async def delete_document(
    trade_id: str,
    document_id: str,
    user_data: Dict = Depends(require_permission("documents:delete")),
    service: DocumentService = Depends(get_document_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Only the uploading company (or an admin) can delete"""
    check_trade_access(trade_id, user_data, supabase, cache)
    document = service.get_document(document_id)
    if document.get("trade_id") != trade_id:
        raise HTTPException(status_code=404, detail="Document not found")
    if not is_admin(user_data, supabase, cache) and \
            document.get("company_id") != get_user_company_id(user_data, supabase, cache):
        raise HTTPException(status_code=403, detail="Only the uploading company can delete this document")
    service.delete_document(document)
    return {"message": "Document deleted successfully"}
