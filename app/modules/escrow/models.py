"""
Escrow table schemas

escrows:
- id: uuid (primary key)
- trade_id: uuid (foreign key to trades)
- buyer_id: uuid (buyer company)
- seller_id: uuid (seller company)
- amount: numeric (> 0)
- balance: numeric (amount while pending/funded, 0 once released or refunded)
- currency: text
- payment_method: text (bank_transfer | flutterwave | ...)
- payment_reference: text
- status: text (pending | funded | released | refunded | disputed)
- expires_at: timestamp (30 days after creation)
- funded_at, released_at, refunded_at: timestamp
- release_reason: text
- created_at, updated_at: timestamp

payments (escrow payouts):
- id, escrow_id, trade_id, recipient_id, amount, currency
- payment_type: text (escrow_release), reason, status (processing | paid)

refunds:
- id, escrow_id, trade_id, recipient_id, amount, currency, reason, status

commissions:
- id, trade_id, escrow_id, deal_value, commission_rate, commission_amount,
  currency, deal_type (standard | assisted | high_value),
  status (pending | earned | waived), waiver_reason, recorded_at
"""
