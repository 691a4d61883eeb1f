"""
Cache package for the authorization engine.

Provides read-through caching of per-actor ability collections and role
lookups. Entries never expire; they are dropped per actor or in bulk,
through a tag flush when the backend supports tags and by walking every
known actor when it does not.
"""
