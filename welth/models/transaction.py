from sqlalchemy import Column, String, DateTime, Numeric, Boolean, ForeignKey, Enum, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
import enum

from welth.core.database import Base


class TransactionType(str, enum.Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class RecurringInterval(str, enum.Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    account_id = Column(Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(Enum(TransactionType), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)  # Always positive, sign comes from type
    description = Column(String(500), nullable=True)
    date = Column(DateTime, nullable=False, default=datetime.utcnow)
    category = Column(String(100), nullable=False)
    receipt_url = Column(String(1024), nullable=True)

    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_interval = Column(Enum(RecurringInterval), nullable=True)
    next_recurring_date = Column(DateTime, nullable=True)
    last_processed = Column(DateTime, nullable=True)

    status = Column(Enum(TransactionStatus), nullable=False, default=TransactionStatus.COMPLETED)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="transactions")
    account = relationship("Account", back_populates="transactions")
