"""Multi-source ingestion: registry, platform adapters and the batched fetcher."""
