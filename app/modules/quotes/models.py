"""
Quote table schema

quotes:
- id: uuid (primary key)
- trade_id: uuid (foreign key to trades; the RFQ being quoted)
- supplier_company_id: uuid (foreign key to companies)
- submitted_by: uuid (foreign key to auth.users)
- unit_price: numeric (> 0)
- total_price: numeric (> 0)
- currency: text
- lead_time_days: integer
- delivery_terms: text (incoterm, e.g. FOB, CIF)
- notes: text
- valid_until: date
- status: text (submitted | selected | rejected)
- created_at: timestamp
- updated_at: timestamp

unique (trade_id, supplier_company_id)
"""
