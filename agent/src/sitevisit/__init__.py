"""Site visit capture agent - offline capture queue and sync for field staff."""

__version__ = "0.1.0"
