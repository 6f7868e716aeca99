"""Command-line interface for the dispatch engine."""
