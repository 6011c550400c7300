"""Race-safe booking and payment settlement core."""

__version__ = "0.1.0"
