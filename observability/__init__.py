"""Structured event envelope and in-memory event store."""
