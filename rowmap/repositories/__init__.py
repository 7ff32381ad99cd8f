"""
repositories/ - Data Access Layer
==================================
The generic repository runs a descriptor's statements through an execution
context and returns hydrated domain objects.
"""
