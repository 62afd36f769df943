"""Court slot availability monitor: wizard navigation, slot extraction, change reports."""

__version__ = "0.1.0"
