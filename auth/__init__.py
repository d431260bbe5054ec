"""auth/ -- Authentication, session, and user-management package for PageKeeper.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/.
api/ imports from auth/, not the other way around. The one exception is
auth/dependencies.py, which may use fastapi's Request because it is part of
the FastAPI dependency injection system.
"""
