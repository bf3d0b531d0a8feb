"""Pipeline stage services: extraction, tagging, embedding, vector upload, batch ingestion."""
