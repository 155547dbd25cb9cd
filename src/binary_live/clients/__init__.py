"""Transport and REST clients."""
