"""Command line interface for cairn-bench."""
