"""Issue Agent: resolve labelled issues with a tool-calling LLM and open pull requests."""

__version__ = "0.1.0"
