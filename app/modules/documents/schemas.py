from pydantic import BaseModel
from typing import Optional, Literal
from datetime import datetime

DocumentType = Literal["invoice", "certificate", "contract", "bill_of_lading", "verification"]


class DocumentResponse(BaseModel):
    id: str
    trade_id: str
    company_id: Optional[str] = None
    uploaded_by: Optional[str] = None
    doc_type: str
    file_name: str
    file_path: str
    content_type: Optional[str] = None
    size_bytes: Optional[int] = None
    created_at: Optional[datetime] = None
    download_url: Optional[str] = None

    class Config:
        from_attributes = True
