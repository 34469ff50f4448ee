"""identity/ -- Client side of the managed identity backend.

backend.py defines the narrow interface every route handler depends on;
supabase.py implements it against Supabase Auth.

Layer rule: identity/ imports from core/ only. api/ and auth/ import from
identity/, not the other way around.
"""
