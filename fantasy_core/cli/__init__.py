"""Command line interface for fantasy core."""
