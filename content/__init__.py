"""content/ -- Portfolio content (about, projects, experiences) domain and persistence.

Layer rule: content/ imports stdlib, third-party libraries, and core/ only.
"""
