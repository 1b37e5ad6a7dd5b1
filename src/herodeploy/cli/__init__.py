"""Command line interface for herodeploy."""
