"""SQLAlchemy models.

All models should be imported here for Alembic to detect them.
"""

from linkhub.core.database import Base
from linkhub.models.profile import Profile
from linkhub.models.link import Link
from linkhub.models.deeplink import Deeplink
from linkhub.models.short_link import ShortLink

__all__ = ["Base", "Profile", "Link", "Deeplink", "ShortLink"]
