# Supabase tables: companies, company_capabilities
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
companies
- id: uuid (primary key)
- user_id: uuid (owner, unique) - one company per owning user
- company_name: text (not null)
- owner_email: text (nullable)
- email: text (nullable)
- phone: text (nullable)
- country: text (nullable)
- city: text (nullable)
- description: text (nullable)
- website: text (nullable)
- logo_url: text (nullable)
- role: text (default: 'buyer') - legacy hint: buyer, seller, hybrid, logistics
- business_type: text (nullable)
- verified: boolean (default: false)
- verification_status: text (default: 'unverified') - unverified, IN_PROGRESS, VERIFIED,
  REJECTED, REQUIRES_REVIEW
- smile_id_job_id: text (nullable) - last KYB job submitted to Smile ID
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

company_capabilities
- company_id: uuid (primary key, foreign key to companies.id)
- can_buy: boolean (default: true)
- can_sell: boolean (default: false)
- sell_status: text (default: 'disabled') - disabled, pending, approved, rejected
- can_logistics: boolean (default: false)
- logistics_status: text (default: 'disabled') - disabled, pending, approved, rejected
- updated_at: timestamp (nullable)

A user becomes a seller by requesting can_sell (sell_status 'pending'); an admin
reviews it to 'approved' or 'rejected'. Matchmaking only considers approved sellers.
"""
