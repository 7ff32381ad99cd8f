"""
mapping/ - Mapping Layer
========================
Entity annotations, descriptors, SQL synthesis, row decoding and relation
hydration. Works on descriptors and plain DB-API rows only.
"""
