# Supabase table: rfqs (legacy mirror of RFQ trades)
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py
#
# The canonical RFQ is the trades row with trade_type = 'rfq'. Every RFQ trade is
# mirrored here with the same id so older listing pages keep working.

"""
Expected Supabase table structure:
- id: uuid (primary key, same value as trades.id)
- buyer_company_id: uuid (foreign key to companies.id)
- buyer_user_id: uuid (foreign key to auth.users.id) - required by RLS insert policy
- category_id: uuid (nullable)
- title: text (not null)
- description: text (nullable)
- quantity: numeric
- unit: text (default: 'pieces')
- target_price: numeric (nullable)
- status: text - open (kernel rfq_open), closed, quoted, ...
- expires_at: timestamp (nullable)
- metadata: jsonb (default: {})
- created_at: timestamp (default: now())
"""
