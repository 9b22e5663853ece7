"""Command-line interface for relay-release."""
