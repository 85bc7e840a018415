from sqlalchemy import Column, Numeric, String
from paperleague.core.database import Base
from paperleague.models.base import UuidMixin, TimestampMixin

class Participant(Base, UuidMixin, TimestampMixin):
    __tablename__ = "participants"

    name = Column(String(100), nullable=False, unique=True)
    color_tag = Column(String(20), nullable=False, default="")
    starting_cash_krw = Column(Numeric(20, 2))  # Falls back to STARTING_CASH_KRW
