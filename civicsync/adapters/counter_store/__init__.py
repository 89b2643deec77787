"""Counter store adapters.

The rate limiter depends on a small atomic-counter port so the same
fixed-window logic runs against Redis in production and an in-memory
emulation in tests.
"""
