"""Generate and edit images through the FAL API from the command line."""

__version__ = "0.3.0"
__all__ = ["__version__"]