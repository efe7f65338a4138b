"""auth/ -- Credential hashing and bearer token handling for Jesusgram.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or social/.
api/ and social/ import from auth/, not the other way around.
"""
