# Supabase table: trade_documents (files in S3 or the trade-documents storage bucket)
# This file documents the expected database schema

"""
trade_documents
- id: uuid (primary key)
- trade_id: uuid (foreign key -> trades.id)
- company_id: uuid (foreign key -> companies.id) - uploader's company
- uploaded_by: uuid (foreign key -> auth.users.id)
- doc_type: text - invoice, certificate, contract, bill_of_lading, verification
- file_name: text
- file_path: text - s3://bucket/key or a path inside the trade-documents bucket
- content_type: text
- size_bytes: integer
- created_at: timestamp
"""
