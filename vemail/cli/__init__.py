"""Command line interface for the vemail client."""
