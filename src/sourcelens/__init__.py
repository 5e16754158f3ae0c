"""SourceLens: retrieval-augmented chat over uploaded source documents."""

__version__ = "0.1.0"
