"""Adapters connecting vitalwatch to storage, HTTP, logging and web frameworks."""
