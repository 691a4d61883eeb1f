"""
Authorization engine for the Access Layer.

This package decides whether an actor (a user or a role) may perform an
action, optionally on a target. It provides:

- app.identifiers: Candidate ability identifiers for an (action, target).
- app.rules: Data model and the decision resolver.
- app.constraints: Serializable predicate trees attached to abilities.
- app.store: The ability store contract and an in-memory store.
- app.cache: Cache backends and the cached resolver.
- app.scope: Tenant scope for records and cache keys.
- app.gate: Before/after gate adapter.
- app.factory: Wiring from configuration.

Guidelines:
- Forbidden abilities always win over allowed ones.
- The engine only reads the store; writes go through the store itself.
- Callers refresh the cache after changing grants.
"""
