from sqlalchemy import Boolean, Column, ForeignKey, String
from paperleague.core.database import Base
from paperleague.models.base import UuidMixin, TimestampMixin

class Portfolio(Base, UuidMixin, TimestampMixin):
    __tablename__ = "portfolios"

    participant_id = Column(String(36), ForeignKey("participants.id"), nullable=False, unique=True)
    base_currency = Column(String(3), nullable=False, default="KRW")
    is_active = Column(Boolean, nullable=False, default=True)
