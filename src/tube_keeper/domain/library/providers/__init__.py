"""Catalog providers (currently YouTube only)."""
