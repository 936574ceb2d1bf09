"""Dashwatch command-line interface (entry point: dashwatch.cli.main:cli_entrypoint)."""
