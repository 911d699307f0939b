# Supabase table: products
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:
- id: uuid (primary key)
- company_id: uuid (foreign key to companies.id, not null) - the selling company
- name: text (not null)
- description: text (nullable)
- category_id: uuid (foreign key to categories.id, nullable)
- country_of_origin: text (nullable)
- price_min: numeric (nullable)
- price_max: numeric (nullable)
- currency: text (default: 'USD')
- moq: numeric (nullable) - minimum order quantity
- unit: text (default: 'pieces')
- images: text[] (default: {})
- status: text (default: 'active') - draft, active, archived
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
"""
