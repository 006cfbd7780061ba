"""Command-line interface for camphub."""
