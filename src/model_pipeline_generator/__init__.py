"""Generate model architecture, training and deployment plans from a prompt."""

__version__ = "0.1.0"
