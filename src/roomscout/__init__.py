"""roomscout: location-aware room discovery for a rental marketplace."""

__version__ = "0.1.0"
