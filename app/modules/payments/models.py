"""
Payment table schemas

billing_history:
- id: uuid (primary key)
- user_id: uuid
- company_id: uuid
- amount: numeric
- currency: text
- payment_method: text (flutterwave)
- payment_provider: text
- provider_reference: text (our tx_ref)
- transaction_type: text (order_payment | sample_payment | subscription | verification_fee)
- related_order_id: uuid (trade id for order payments)
- status: text (pending | processing | completed | failed)
- description: text
- metadata: jsonb
- created_at: timestamp

escrow_payments (payment intent for a trade escrow):
- id, trade_id, buyer_company_id, seller_company_id
- amount, currency, commission_rate (8.00)
- provider_reference: text (tx_ref)
- status: text (pending | held)

payment_webhook_log (idempotency and audit of provider callbacks):
- id, tx_ref, flw_ref, event
- status: text (verified | verification_failed | ignored)
- amount, currency, payload jsonb, created_at
"""
