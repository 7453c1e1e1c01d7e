"""Cookie containers: partition browser session cookies into switchable containers."""

__version__ = "0.1.0"
