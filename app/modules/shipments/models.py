# Supabase tables: shipments, logistics_providers, dispatch_notifications, dispatch_events
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py and dispatch.py

"""
shipments
- id: uuid (primary key)
- trade_id: uuid (foreign key to trades.id, unique)
- status: text (default: 'pending') - pending, assigned, picked_up, in_transit, customs_hold,
  out_for_delivery, delivered (assigned is set only by logistics-accept)
- tracking_number: text (not null) - AFK-XXXXXXXX
- carrier: text (nullable)
- logistics_company_id: uuid (foreign key to companies.id, nullable)
- logistics_provider_id: uuid (foreign key to logistics_providers.id, nullable) - set once, first acceptance wins
- pickup_scheduled_at: timestamp (nullable)
- origin: text (nullable)
- destination: text (nullable)
- current_location: text (nullable)
- estimated_delivery: timestamp (nullable)
- delivered_at: timestamp (nullable)
- metadata: jsonb (default: {})
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

logistics_providers
- id: uuid (primary key)
- provider_name: text
- phone: text
- whatsapp: text (nullable)
- city: text
- vehicle_types: text[] - van, truck, container
- response_score: numeric
- is_available: boolean
- is_verified: boolean
- last_active_at: timestamp

dispatch_notifications (queue drained by the notification-sender function)
- id: uuid (primary key)
- trade_id: uuid (nullable)
- provider_id: uuid (nullable)
- notification_type: text - sms | whatsapp | email
- recipient: text
- message_body: text
- status: text (default: 'pending') - pending, sent, simulated, failed
- error_message: text (nullable)
- sent_at: timestamp (nullable)
- created_at: timestamp (default: now())

dispatch_events
- id: uuid (primary key)
- trade_id: uuid
- provider_id: uuid (nullable)
- shipment_id: uuid (nullable)
- event_type: text - DISPATCH_REQUESTED, PROVIDER_NOTIFIED, DISPATCH_FAILED,
  PROVIDER_ACCEPTED, PROVIDER_REJECTED, SHIPMENT_ASSIGNED
- payload: jsonb
- created_at: timestamp (default: now())
"""
