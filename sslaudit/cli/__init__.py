"""Command-line interface for sslaudit."""
