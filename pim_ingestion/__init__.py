"""Product import pipeline for the versioned PIM catalog."""

__version__ = "0.1.0"
