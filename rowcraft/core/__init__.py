"""Core Layer — pure logic: clause types, SQL rendering, naming, scopes, errors.

Invariants:
    - No module in core/ imports from orm/ or infrastructure/
    - No IO, no async; adapters are only described here as Protocols
"""
