"""Rate limiting adapters.

The limiter is written against the counter store port, so the same
fixed-window accounting runs on Redis in production (shared by every
worker) and on the in-memory store in tests.
"""
