"""
Infrastructure layer for lazycache.

Registries, backend adapters and concrete shared cache / session stores.
"""
