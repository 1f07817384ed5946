"""Pydantic schemas for request/response validation."""

from .application import *  # noqa: F403
from .common import *  # noqa: F403
from .health import *  # noqa: F403
from .subscription import *  # noqa: F403
from .tour import *  # noqa: F403
