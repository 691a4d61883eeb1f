"""
Constraints package.

Serializable predicate trees attached to abilities. An ability whose
identifier matches only counts when its constraint tree also passes against
the target (and, for column predicates, the actor).

Modules of interest:
- models: ValuePredicate, ColumnPredicate, Group and (de)serialization.
- builder: Fluent ConstraintBuilder and the where/or_where helpers.
"""
