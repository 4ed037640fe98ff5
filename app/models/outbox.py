from sqlalchemy import Column, String, DateTime, Text, Integer, JSON, Index
from app.database import Base
from app.utils.clock import utcnow
import enum
import uuid

class OutboxStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"

class OutboxEvent(Base):
    """A side effect recorded in the same transaction as the state change that caused it."""
    __tablename__ = "outbox_events"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    event_type = Column(String, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(String, nullable=False, default=OutboxStatus.PENDING.value)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    claimed_at = Column(DateTime, nullable=True)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('ix_outbox_status_created', 'status', 'created_at'),
    )

    def __repr__(self):
        return f"<OutboxEvent id={self.id} type={self.event_type} status={self.status} attempts={self.attempts}>"
