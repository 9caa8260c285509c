"""Command line client for the ExpressVPN browser helper."""

__version__ = "0.3.0"
