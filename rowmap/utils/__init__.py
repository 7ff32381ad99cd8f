"""
utils/ - Shared Helpers
=======================
Logging setup and small text helpers with no dependencies on other layers.
"""
