"""inventory/ -- Asset and vulnerability inventory domain for VulnTrack.

Layer rule: inventory/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or auth/. The HTTP layer maps between the
dataclasses here and its own pydantic models.
"""
