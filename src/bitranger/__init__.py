"""bitranger — local context tree for coding agents."""

__version__ = "0.1.0"
