"""SourceLens: focused source viewing for security findings in JavaScript."""

__version__ = "0.3.0"
