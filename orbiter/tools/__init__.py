"""Command-line tools for Orbiter analytics."""
