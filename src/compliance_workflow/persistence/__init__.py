"""
Persistence layer: the SQLite workflow archive.

Schema versions are tracked in a ``schema_versions`` table with per-migration
checksums; stored workflow states carry a SHA-256 checksum verified on load.
"""
