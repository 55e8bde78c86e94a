"""desk-agent: console chat client for OpenAI-compatible providers with task automation."""

__version__ = "0.3.0"
