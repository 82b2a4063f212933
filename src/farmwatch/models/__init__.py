from .base import Base
from .fire_zone import FireZone
from .live_feed_setting import LiveFeedSetting
from .map_config import MapConfig
from .notification import Notification
from .security_point import SecurityPoint
from .team_member import TeamMember
from .user import User

__all__ = [
    "Base",
    "FireZone",
    "LiveFeedSetting",
    "MapConfig",
    "Notification",
    "SecurityPoint",
    "TeamMember",
    "User",
]
