"""Screen activity capture, classification and daily work-session analysis."""

__version__ = "0.1.0"

__all__ = ["__version__"]
