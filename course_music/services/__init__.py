"""Persistence, upload and library services."""
