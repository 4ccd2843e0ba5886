"""auth/ -- Session authentication and permission authorization for the admin back-office.

Layer rule: auth/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/ or audit/.
api/ imports from auth/, not the other way around.
"""
