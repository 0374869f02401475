"""FoodShare coordination engine: claims, group membership workflow and notifications."""

__version__ = "1.0.0"
