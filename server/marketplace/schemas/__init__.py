"""Pydantic schemas for request/response validation."""

from .account import *  # noqa: F403
from .availability import *  # noqa: F403
from .booking import *  # noqa: F403
from .common import *  # noqa: F403
from .health import *  # noqa: F403
from .listing import *  # noqa: F403
from .payment import *  # noqa: F403
from .payout import *  # noqa: F403
from .review import *  # noqa: F403
from .webhook import *  # noqa: F403
