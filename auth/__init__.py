"""auth/ -- Authentication and authorization package for Foundry Admin.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/, web/, audit/, content/, or cache/.
api/ and web/ import from auth/, not the other way around.
"""
