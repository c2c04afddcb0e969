"""Per-user long-term memory for a conversational learning coach."""

__version__ = "0.1.0"
