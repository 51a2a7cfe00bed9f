"""Command-line interface for racecov."""
