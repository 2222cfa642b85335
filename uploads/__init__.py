"""uploads/ -- Signed upload URL issuance for SupaGate.

Layer rule: uploads/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or auth/.
"""
