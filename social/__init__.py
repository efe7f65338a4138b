"""social/ -- Users, posts, follows and tokens: the Jesusgram domain.

Layer rule: social/ imports from core/ and auth/ only.
It does NOT import from api/. api/ imports from social/, not the other way around.
"""
