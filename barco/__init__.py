"""Token ring topology, generation ownership and record compression for a streaming broker."""

__version__ = "0.1.0"