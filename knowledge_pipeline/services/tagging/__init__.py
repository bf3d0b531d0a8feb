"""Smart tagging service."""

from knowledge_pipeline.services.tagging.smart_tagger import SmartTagger, TaggingOutcome

__all__ = ["SmartTagger", "TaggingOutcome"]
