"""Command-line interface for the self-assessment engine."""
