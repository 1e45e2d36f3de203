"""
Persistence layer.

- **db_connection.py**: Single long-lived aiosqlite connection with serialised writes.
- **key_value_store.py**: Cached key-value store, in memory or backed by SQLite.
"""
