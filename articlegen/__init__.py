"""articlegen: turn a keyword into a publish-ready HTML article through staged LLM calls."""

__version__ = "0.4.0"
