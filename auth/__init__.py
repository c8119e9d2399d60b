"""auth/ -- Session cookies, route guarding and request dependencies for Skillink.

Layer rule: auth/ imports from core/, backend/ and marketplace/ plus
third-party libraries. It does NOT import from api/ or web/.
api/ and web/ import from auth/, not the other way around.
"""
