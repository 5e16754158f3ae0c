"""Storage, retrieval and synthesis services for SourceLens."""
