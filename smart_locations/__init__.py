"""SmartLocations: nearby points of interest search service."""

__version__ = "0.3.0"
