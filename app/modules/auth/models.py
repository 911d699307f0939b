# Supabase Auth + profiles
# Authentication uses Supabase's built-in auth system (auth.users).
# Marketplace data about the person lives in the public.profiles table,
# keyed by the auth user id:
#
# profiles
#   id            uuid (= auth.users.id)
#   email         text
#   full_name     text
#   phone         text
#   company_id    uuid -> companies.id (nullable until onboarding)
#   role          text (buyer | seller | hybrid | logistics), legacy hint
#   is_admin      boolean
#   verification_status text (PENDING | IN_PROGRESS | VERIFIED | REJECTED | REQUIRES_REVIEW)
#   smile_id_job_id     text
#   created_at, updated_at timestamptz

"""
Supabase Auth provides:
- auth.sign_up() - Register new users
- auth.sign_in_with_password() - Authenticate users
- auth.get_user() - Get current user from JWT token
- auth.sign_out() - Logout users

A profiles row is written on registration. Marketplace roles are not stored;
they are resolved per request from profiles.is_admin and the company's
company_capabilities row.
"""
