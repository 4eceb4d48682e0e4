"""Website-training pipeline: crawl a site or ingest documents, then ask an LLM for a summary and FAQs."""

__version__ = "0.3.0"
