"""HTTP query surface for the media scanner catalog."""

__version__ = "1.0.0"
