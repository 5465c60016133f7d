"""
Domain types for the compliance workflow: task descriptors, architecture
profiles, scope items, artifacts, verdicts and phase transitions.

The domain layer performs no I/O. Every model serializes to a canonical JSON
mapping and is reconstructible from it.
"""
