"""valvespec: fail-closed industrial valve specification engine."""

__version__ = "2.0.0"
