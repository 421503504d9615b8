"""Pydantic schemas for request/response validation."""

from .alert import *  # noqa: F403
from .booking import *  # noqa: F403
from .checkin import *  # noqa: F403
from .common import *  # noqa: F403
from .damage import *  # noqa: F403
from .deposit import *  # noqa: F403
from .health import *  # noqa: F403
from .payment import *  # noqa: F403
from .vehicle import *  # noqa: F403
