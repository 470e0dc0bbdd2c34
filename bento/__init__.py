"""Framework for building blockchain indexers: configure, fetch blocks and events from a node, and run them through processors."""

__version__ = "0.1.0"