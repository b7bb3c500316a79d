"""Business onramp order engine."""

__version__ = "0.1.0"
