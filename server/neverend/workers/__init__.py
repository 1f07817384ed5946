"""Periodic workers shared by the client runtime."""

from .base import BaseWorker

__all__ = ["BaseWorker"]
