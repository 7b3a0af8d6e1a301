"""lmbridge: one host chat model behind the OpenAI and Anthropic wire protocols."""

__version__ = "0.1.0"
