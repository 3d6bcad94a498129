"""Exporter lifecycle."""
