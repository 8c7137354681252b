"""Read tracking and subscription notifications for course discussion forums."""

__version__ = "0.1.0"
