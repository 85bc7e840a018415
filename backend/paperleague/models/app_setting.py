from sqlalchemy import Column, String, Text
from paperleague.core.database import Base
from paperleague.models.base import TimestampMixin

class AppSetting(Base, TimestampMixin):
    """
    Key/value settings editable at runtime (e.g. game_start_date).
    """
    __tablename__ = "app_settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
