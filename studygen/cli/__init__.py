"""Command-line interface for studygen."""
