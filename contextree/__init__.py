"""contextree: scope resolution, navigation and validation for agent context trees."""

__version__ = "0.1.0"
