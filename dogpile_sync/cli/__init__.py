"""Command-line interface for dogpile sync."""
