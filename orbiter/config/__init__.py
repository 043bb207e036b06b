"""Configuration for the Orbiter server and tools."""
