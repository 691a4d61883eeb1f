"""
Ability store package.

- base: The AbilityStore contract the resolver reads through.
- memory: In-memory reference implementation.
- ownership: Ownership rules for only-owned abilities.
"""
