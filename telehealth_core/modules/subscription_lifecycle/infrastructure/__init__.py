"""Infrastructure adapters for the subscription lifecycle module."""
