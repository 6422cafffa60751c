"""IR-based operator fusion for computation graphs."""

__version__ = "0.1.0"
