"""syncrep: keep a vault and an external directory mirrored in both directions."""

__version__ = "1.0.0"
