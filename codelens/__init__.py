"""CodeLens: LLM explanations and architecture diagrams for git commits."""

__version__ = "0.1.0"
