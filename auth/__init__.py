"""auth/ -- Credentials, sessions, app registry and the broker flows.

Layer rule: auth/ imports only stdlib + third-party libraries (and core/ for
type hints). It does NOT import from api/ or web/.
api/ and web/ import from auth/, not the other way around.
"""
