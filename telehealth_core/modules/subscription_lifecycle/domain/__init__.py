"""Subscription lifecycle domain layer: models, ports, events and services."""
