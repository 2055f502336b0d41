"""
Repositories: stateless SQL helpers that take an open aiosqlite connection.

Transactions are owned by the caller (``Database.transaction()``), so a strike
update and its audit append can share one commit.
"""
