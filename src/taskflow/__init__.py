"""TaskFlow todo agent with runtime tool discovery."""

__version__ = "0.1.0"
