from sqlalchemy import Column, DateTime, Numeric, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from welth.core.database import Base


class Budget(Base):
    __tablename__ = "budgets"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    amount = Column(Numeric(14, 2), nullable=False)  # Monthly spending limit

    # Set by the alert job after a successful send; limits alerts to one per month
    last_alert_sent = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="budget")
