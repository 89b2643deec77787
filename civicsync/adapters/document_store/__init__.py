"""Document store adapters.

Services talk to named collections through a narrow port so MongoDB can be
replaced by an in-memory emulation (with real unique-index semantics) in
tests.
"""
