"""Allow ``python -m knowledge_pipeline.cli`` execution."""

from knowledge_pipeline.cli.ingest import main

main()
