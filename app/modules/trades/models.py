# Supabase table: trades
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py
#
# trades is the canonical kernel record. RFQ trades are mirrored into the legacy
# rfqs table with the same id (see TradeKernelService.create_trade).

"""
Expected Supabase table structure:
- id: uuid (primary key)
- trade_type: text (not null, default: 'rfq') - values: rfq, direct, order
- title: text (not null)
- description: text (nullable)
- buyer_id: uuid (foreign key to companies.id, not null)
- seller_id: uuid (foreign key to companies.id, nullable until a quote is selected)
- created_by: uuid (foreign key to auth.users.id)
- category_id: uuid (foreign key to categories.id, nullable)
- product_id: uuid (foreign key to products.id, nullable)
- quantity: numeric (nullable)
- quantity_unit: text (default: 'pieces')
- target_price: numeric (nullable)
- price_min, price_max: numeric (nullable)
- total_value: numeric (nullable) - set when a quote is selected
- currency: text (default: 'USD')
- status: text (default: 'draft') - see TradeState in state_machine.py
- delivery_location: text (nullable)
- destination_country: text (nullable)
- expires_at: timestamp (nullable)
- metadata: jsonb (default: {}) - signatures[], trade_dna, previous_state,
  buyer_accepted, kernel_version, created_at_platform
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

Database function kernel_settle_trade(p_trade_id uuid, p_user_id uuid, p_metadata jsonb)
atomically marks the trade settled and releases its funded escrow. When the function
is not installed the kernel performs the same two updates itself.
"""
