"""
Rules package.

Defines the authorization data model and the decision resolver used by the
engine. The resolver combines forbidden and allowed ability collections
(direct, role-inherited and "everyone" grants) into a single decision and
reports which ability matched.

Modules of interest:
- models: Ability, Role, Permission, RoleAssignment, Entity and Decision.
- engine: Forbid-first resolution with ownership fallback and constraints.

The resolver does no persistence of its own; it reads from an ability
store and can be fronted by the cache layer.
"""
