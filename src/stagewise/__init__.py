"""Stagewise - staged deep research over web search and LLM generation."""

__version__ = "0.1.0"
