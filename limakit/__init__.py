"""Building blocks for managing Linux virtual machine instances."""

__version__ = "0.1.0"