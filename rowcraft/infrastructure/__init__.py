"""Infrastructure Layer — concrete database adapter and logging setup.

Invariants:
    - Infrastructure never imports from orm/; it implements core/ Protocols
    - All driver exceptions are mapped to AdapterError before leaving this layer

Design Decisions:
    - SQLAlchemy async engine as the single adapter: one code path for
      PostgreSQL (asyncpg) and SQLite (aiosqlite)
"""
