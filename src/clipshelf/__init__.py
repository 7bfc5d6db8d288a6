"""ClipShelf: clipboard history with automatic categorization."""

__version__ = "0.1.0"
