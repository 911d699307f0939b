# Supabase tables: verification_jobs, activity_logs (plus verification columns on companies and profiles)
# This file documents the expected database schema

"""
verification_jobs
- id: uuid (primary key)
- job_id: text (unique) - afrikoni_biz_<company>_<ms> or afrikoni_kyc_<user>_<ms>
- job_type: integer - 7 business, 5 enhanced KYC
- company_id: uuid (nullable)
- user_id: uuid (nullable)
- status: text - IN_PROGRESS, VERIFIED, REJECTED, REQUIRES_REVIEW
- request_payload: jsonb (images stripped)
- response_payload: jsonb (nullable)
- result_code: text (nullable)
- result_text: text (nullable)
- completed_at: timestamp (nullable)
- created_at: timestamp
- updated_at: timestamp

companies (verification columns)
- verification_status, verification_type, smile_id_job_id, verification_initiated_at,
  verified_at, verification_result_code, verification_result_text, verification_actions,
  verification_notes

profiles (KYC columns)
- kyc_status, smile_id_job_id, kyc_initiated_at, kyc_verified_at, kyc_result_code, kyc_result_text

activity_logs
- id: uuid (primary key)
- entity_type: text - company | profile
- entity_id: uuid
- action: text - VERIFICATION_INITIATED, VERIFICATION_CALLBACK_RECEIVED, VERIFICATION_FINALIZED, ...
- metadata: jsonb
- created_at: timestamp
"""
