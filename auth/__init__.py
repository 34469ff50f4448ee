"""auth/ -- The Auth Gate for protected routes.

Layer rule: auth/ imports from identity/ only. It does NOT import from api/
or profiles/. api/ imports from auth/, not the other way around.
"""
