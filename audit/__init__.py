"""audit/ -- Admin activity log (who did what, when, from where).

Layer rule: audit/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/ or auth/.
"""
