"""Command line interface for mwaction."""
