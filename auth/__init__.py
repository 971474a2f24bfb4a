"""auth/ -- Token issuance, verification, and revocation for nimble-tokens.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
Callers (login, confirm, reset and change-email flows) import from auth/,
not the other way around.
"""
