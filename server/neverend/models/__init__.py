"""Models module exporting all database models."""

from .application import Application
from .subscription import Subscription
from .tour import Tour, TourInclusion, TourPrice, TourProgram

__all__ = [
    # Catalog entities
    "Tour",
    "TourProgram",
    "TourPrice",
    "TourInclusion",

    # Intake entities
    "Application",
    "Subscription",
]
