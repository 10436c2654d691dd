"""ORM Layer — the async shell: query execution, record lifecycle, associations.

Invariants:
    - Every statement reaches the adapter through orm/execution.py
    - No module in orm/ imports a concrete adapter; only core/adapter_protocols.py

Design Decisions:
    - Pure rendering and naming live in core/; this layer sequences awaits around them
"""
