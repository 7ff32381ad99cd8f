"""
db/ - Database Layer
====================
Connection pool handle and execution contexts (per-call connections or a
bound transaction, plus cancellation). Lowest layer of the engine.
"""
