"""auth/ -- Identity and session package for VulnTrack.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or inventory/.
api/ and main.py import from auth/, not the other way around.
"""
