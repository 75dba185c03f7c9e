"""Persistence layer: ORM models and session management."""
