"""Wine-tour pricing, booking and invoice lifecycle engine."""

__version__ = "0.1.0"
