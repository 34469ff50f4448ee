"""profiles/ -- Best-effort denormalized mirror of identity fields.

The mirror is never the source of truth and never read by the API. Writes
go through profiles.mirror, which logs failures instead of raising them.
"""
