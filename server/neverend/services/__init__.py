"""Service layer package."""

from .application_service import ApplicationService
from .subscription_service import SubscriptionService
from .tour_service import TourService

__all__ = [
    "ApplicationService",
    "SubscriptionService",
    "TourService",
]
