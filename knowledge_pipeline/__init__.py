"""Knowledge ingestion pipeline: extract, tag, embed and upload content to a vector store."""

__version__ = "0.1.0"
