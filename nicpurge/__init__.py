"""nicpurge — removes leftover network adapter configuration from the Windows registry."""

__version__ = "0.1.0"
