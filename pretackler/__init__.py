"""PreTackler: batch source-file summarization over a streaming chat API."""

__version__ = "0.3.0"
