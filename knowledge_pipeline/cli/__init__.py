"""Command-line interface for the knowledge ingestion pipeline."""
