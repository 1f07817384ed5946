"""Catalog page client: renders the tour catalog into the CMS page and keeps it rendered."""

from .cards import build_grid_card, build_slide_card
from .catalog import CatalogFetcher, RenderSession, TourRecord
from .dom import Page
from .errors import CatalogFetchError, ClientError, ContainerNotFoundError, SubmissionError
from .forms import FormSubmissionGuard, SubscriptionForm, classify_form
from .guard import ReconciliationGuard
from .runtime import CatalogPage
from .tour_page import TourPage

__all__ = [
    "CatalogFetchError",
    "CatalogFetcher",
    "CatalogPage",
    "ClientError",
    "ContainerNotFoundError",
    "FormSubmissionGuard",
    "Page",
    "ReconciliationGuard",
    "RenderSession",
    "SubmissionError",
    "SubscriptionForm",
    "TourPage",
    "TourRecord",
    "build_grid_card",
    "build_slide_card",
    "classify_form",
]
