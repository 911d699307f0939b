# Supabase tables: notifications, sms_logs
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py
# (dispatch_notifications is documented in app/modules/shipments/models.py)

"""
notifications (in-app inbox)
- id: uuid (primary key)
- user_id: uuid (foreign key to auth.users.id, nullable)
- company_id: uuid (foreign key to companies.id, nullable)
- title: text (not null)
- message: text (not null)
- type: text - rfq, quote, trade, payment, verification, system
- link: text (nullable) - frontend route
- related_id: uuid (nullable)
- read: boolean (default: false)
- metadata: jsonb (default: {})
- created_at: timestamp (default: now())

sms_logs
- id: uuid (primary key)
- recipient: text
- message: text
- event_type: text (nullable)
- status: text - sent, failed, simulated
- provider_message_id: text (nullable)
- cost: text (nullable)
- metadata: jsonb (default: {})
- created_at: timestamp (default: now())
"""
