"""
Identifier compilation for ability lookups.
"""
