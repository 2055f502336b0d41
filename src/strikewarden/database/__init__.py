"""
Database package for strikewarden.

Provides the aiosqlite connection manager, schema creation and query timing.

Public API:
    - Database: coordinator owning the connection (``database.database``)
    - ConnectionManager: serialised write transactions over one connection
    - SchemaManager: table and index creation
"""
