"""auth/ -- Authentication and authorization package for the portfolio backend.

Layer rule: auth/ imports stdlib, third-party libraries, and core/ only.
It does NOT import from api/ or content/.
api/ imports from auth/, not the other way around.
"""
