"""HTTP trigger layer for the dispatch engine."""
