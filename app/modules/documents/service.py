from supabase import Client
from app.modules.documents.schemas import DocumentResponse
from app.modules.documents.storage import build_s3_store, SUPABASE_BUCKET
from fastapi import HTTPException, UploadFile
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
import logging
import os
import re
import uuid

logger = logging.getLogger(__name__)

MAX_DOCUMENT_BYTES = 10 * 1024 * 1024

ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/webp",
}

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def safe_file_name(name: Optional[str]) -> str:
    cleaned = _UNSAFE_NAME.sub("_", os.path.basename(name or "")).strip("._")
    return cleaned or "document"


class DocumentService:
    """Trade documents in S3 when configured, otherwise the trade-documents bucket"""

    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.s3_store = build_s3_store()

    def _to_response(self, row: Dict[str, Any]) -> DocumentResponse:
        return DocumentResponse(**row, download_url=self.download_url(row["file_path"]))

    def download_url(self, file_path: str) -> Optional[str]:
        if self.s3_store and file_path.startswith("s3://"):
            return self.s3_store.signed_url(file_path)
        try:
            signed = self.supabase.storage.from_(SUPABASE_BUCKET).create_signed_url(file_path, 3600)
            return (signed or {}).get("signedURL") or (signed or {}).get("signedUrl")
        except Exception as e:
            logger.warning(f"Could not sign {file_path}: {e}")
            return None

    async def upload_document(
        self,
        trade_id: str,
        doc_type: str,
        file: UploadFile,
        user_id: str,
        company_id: Optional[str]
    ) -> DocumentResponse:
        content_type = file.content_type or "application/octet-stream"
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise HTTPException(status_code=400, detail="Only PDF, JPEG, PNG or WEBP documents are accepted")
        content = await file.read()
        if not content:
            raise HTTPException(status_code=400, detail="File is empty")
        if len(content) > MAX_DOCUMENT_BYTES:
            raise HTTPException(status_code=413, detail="File exceeds the 10 MB limit")

        file_name = safe_file_name(file.filename)
        key = f"{trade_id}/{doc_type}/{uuid.uuid4().hex}_{file_name}"

        if self.s3_store:
            try:
                file_path = self.s3_store.put(content, f"trade-documents/{key}", content_type)
                logger.info(f"Uploaded document to S3: {file_path}")
            except Exception as e:
                raise HTTPException(status_code=500, detail=f"Failed to upload to S3: {str(e)}")
        else:
            try:
                self.supabase.storage.from_(SUPABASE_BUCKET).upload(
                    key,
                    content,
                    file_options={"content-type": content_type}
                )
                file_path = key
                logger.info(f"Uploaded document to Supabase Storage: {file_path}")
            except Exception as e:
                logger.error(f"Supabase Storage upload failed: {str(e)}")
                raise HTTPException(status_code=500, detail=f"Failed to upload to storage: {str(e)}")

        try:
            result = self.supabase.table("trade_documents").insert({
                "trade_id": trade_id,
                "company_id": company_id,
                "uploaded_by": user_id,
                "doc_type": doc_type,
                "file_name": file_name,
                "file_path": file_path,
                "content_type": content_type,
                "size_bytes": len(content),
                "created_at": datetime.now(timezone.utc).isoformat()
            }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to record document")
            return self._to_response(result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_documents(self, trade_id: str, doc_type: Optional[str] = None) -> List[DocumentResponse]:
        try:
            query = self.supabase.table("trade_documents")\
                .select("*")\
                .eq("trade_id", trade_id)
            if doc_type:
                query = query.eq("doc_type", doc_type)
            result = query.order("created_at", desc=True).execute()
            return [self._to_response(row) for row in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_document(self, document_id: str) -> Dict[str, Any]:
        result = self.supabase.table("trade_documents")\
            .select("*")\
            .eq("id", document_id)\
            .maybe_single()\
            .execute()
        if not result or not result.data:
            raise HTTPException(status_code=404, detail="Document not found")
        return result.data

    def delete_document(self, document: Dict[str, Any]) -> bool:
        """Remove the stored file, then the row. A missing file does not block the delete."""
        try:
            file_path = document.get("file_path")
            if file_path:
                if self.s3_store and file_path.startswith("s3://"):
                    self.s3_store.remove(file_path)
                else:
                    try:
                        self.supabase.storage.from_(SUPABASE_BUCKET).remove([file_path])
                    except Exception as e:
                        logger.warning(f"Failed to delete {file_path} from Supabase Storage: {e}")
            result = self.supabase.table("trade_documents").delete().eq("id", document["id"]).execute()
            return len(result.data or []) > 0
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
