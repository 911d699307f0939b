# Supabase table: trade_events
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py
#
# The table is append-only. RLS grants INSERT and SELECT only; no UPDATE or DELETE
# policy exists, and the service layer exposes no mutation besides insert.

"""
Expected Supabase table structure:
- id: uuid (primary key)
- trade_id: uuid (foreign key to trades.id, not null)
- event_type: text (not null) - see TradeEventType in service.py
- status_from: text (nullable) - kernel state before a state_transition
- status_to: text (nullable) - kernel state after a state_transition
- actor_user_id: uuid (nullable) - auth user that caused the event; null for system events
- actor_role: text (nullable) - buyer | seller | admin | system
- decision: text (nullable) - ALLOW | BLOCK for kernel decisions
- payload: jsonb (default: {})
- created_at: timestamp (default: now())

Supabase table: automation_rules
- id: uuid (primary key)
- trigger_event: text (not null) - event_type that fires the rule
- enabled: boolean (default: true)
- action: text (not null) - send_notification is executed; other actions are logged and skipped
- recipients: text[] (nullable) - buyer | seller; both when empty
- message_template: text (nullable) - may reference {event_type} and {trade_id}
- created_at: timestamp (default: now())
"""
