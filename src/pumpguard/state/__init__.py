"""State/store layer.

This package is the single source of truth for motor state: the durable
keyed store, the expiring cache for ephemeral records, and the pure
policy that decides how commands and heartbeats change a device.
"""
