"""Identity resolution and phone lookup for probate personal representatives."""

__version__ = "0.3.0"
