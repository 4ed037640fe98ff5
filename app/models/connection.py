from sqlalchemy import Column, String, DateTime, Text, UniqueConstraint, ForeignKey, Index
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.clock import utcnow
import enum
import uuid

class ConnectionStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

class Connection(Base):
    """One direction of a bidirectional connection between two users.

    The record belongs to ``owner_user_id``'s connections subcollection. Its
    peer, the mirror record, is owned by ``counterpart_user_id`` and points
    back at the owner.
    """
    __tablename__ = "connections"

    id = Column(String, primary_key=True)  # "{owner_user_id}_{counterpart_user_id}"
    owner_user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    counterpart_user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    initiator_user_id = Column(String, nullable=False)
    status = Column(String, default=ConnectionStatus.PENDING.value, nullable=False)
    message = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    owner = relationship("User", foreign_keys=[owner_user_id], back_populates="connections")
    counterpart = relationship("User", foreign_keys=[counterpart_user_id])

    __table_args__ = (
        UniqueConstraint('owner_user_id', 'counterpart_user_id', name='unique_connection_direction'),
    )

    @staticmethod
    def make_id(owner_user_id: str, counterpart_user_id: str) -> str:
        return f"{owner_user_id}_{counterpart_user_id}"

    @staticmethod
    def make_path(owner_user_id: str, connection_id: str) -> str:
        return f"users/{owner_user_id}/connections/{connection_id}"

    @property
    def path(self) -> str:
        return self.make_path(self.owner_user_id, self.id)

    def __repr__(self):
        return (
            f"<Connection id={self.id} owner={self.owner_user_id} "
            f"counterpart={self.counterpart_user_id} status={self.status}>"
        )

class ConnectionSyncIssue(Base):
    """A detected divergence between a connection record and its mirror."""
    __tablename__ = "connection_sync_issues"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_user_id = Column(String, nullable=False, index=True)
    counterpart_user_id = Column(String, nullable=False, index=True)
    expected_status = Column(String, nullable=False)
    detail = Column(Text, nullable=True)
    detected_at = Column(DateTime, nullable=False, default=utcnow)
    resolved_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('ix_sync_issues_open', 'resolved_at', 'detected_at'),
    )

    def __repr__(self):
        return (
            f"<ConnectionSyncIssue owner={self.owner_user_id} counterpart={self.counterpart_user_id} "
            f"expected={self.expected_status} resolved={self.resolved_at is not None}>"
        )
