"""auth/ -- Identity verification, role resolution and profile storage for SupaGate.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or uploads/.
api/ imports from auth/, not the other way around.
"""
