"""Mock-interview coaching client: session lifecycle and answer analysis."""

__version__ = "1.0.0"
