"""
Scheduled background work.

- **cleanup_scheduler.py**: Periodically purges expired reporter cooldowns and
  reported-message records, then flushes the key-value store.
"""
