"""curator — link intake, classification, and versioned content persistence."""

__version__ = "0.1.0"
