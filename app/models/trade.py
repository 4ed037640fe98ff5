from sqlalchemy import Column, String, DateTime, Text, Integer, Boolean, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.clock import utcnow
import enum
import uuid

class TradeStatus(str, enum.Enum):
    OPEN = "open"
    PROPOSED = "proposed"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in-progress"
    PENDING_CONFIRMATION = "pending-confirmation"
    CHANGE_REQUESTED = "change-requested"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"

class ProposalStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

class ChangeRequestStatus(str, enum.Enum):
    PENDING = "pending"
    ADDRESSED = "addressed"
    REJECTED = "rejected"

class Trade(Base):
    """A skill trade between its creator and, once a proposal is accepted, a participant."""
    __tablename__ = "trades"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String, nullable=True)
    creator_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    skills_offered = Column(JSON, nullable=False, default=list)
    skills_wanted = Column(JSON, nullable=False, default=list)
    status = Column(String, default=TradeStatus.OPEN.value, nullable=False, index=True)

    # Completion workflow
    accepted_at = Column(DateTime, nullable=True)
    completion_requested_by = Column(String, nullable=True)
    completion_requested_at = Column(DateTime, nullable=True)
    completion_notes = Column(Text, nullable=True)
    completion_evidence = Column(JSON, nullable=False, default=list)
    completion_confirmed_at = Column(DateTime, nullable=True)
    auto_completed = Column(Boolean, nullable=False, default=False)
    auto_completion_reason = Column(String, nullable=True)
    reminders_sent = Column(Integer, nullable=False, default=0)

    cancel_reason = Column(Text, nullable=True)
    dispute_reason = Column(Text, nullable=True)
    dispute_details = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    creator = relationship("User", foreign_keys=[creator_id])
    participant = relationship("User", foreign_keys=[participant_id])
    proposals = relationship(
        "TradeProposal", back_populates="trade",
        cascade="all, delete-orphan", order_by="TradeProposal.created_at"
    )
    change_requests = relationship(
        "ChangeRequest", back_populates="trade",
        cascade="all, delete-orphan", order_by="ChangeRequest.sequence"
    )

    @property
    def path(self) -> str:
        return f"trades/{self.id}"

    def parties(self) -> tuple:
        return tuple(uid for uid in (self.creator_id, self.participant_id) if uid)

    def counterparty_of(self, user_id: str):
        if user_id == self.creator_id:
            return self.participant_id
        if user_id == self.participant_id:
            return self.creator_id
        return None

    def __repr__(self):
        return f"<Trade id={self.id} creator={self.creator_id} participant={self.participant_id} status={self.status}>"

class TradeProposal(Base):
    """An offer by a user to take part in a trade."""
    __tablename__ = "trade_proposals"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    trade_id = Column(String, ForeignKey("trades.id", ondelete="CASCADE"), nullable=False, index=True)
    proposer_user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, default=ProposalStatus.PENDING.value, nullable=False)
    message = Column(Text, nullable=False, default="")
    skills_offered = Column(JSON, nullable=False, default=list)
    skills_wanted = Column(JSON, nullable=False, default=list)
    evidence = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    trade = relationship("Trade", back_populates="proposals")

    @property
    def path(self) -> str:
        return f"trades/{self.trade_id}/proposals/{self.id}"

    def __repr__(self):
        return f"<TradeProposal id={self.id} trade={self.trade_id} proposer={self.proposer_user_id} status={self.status}>"

class ChangeRequest(Base):
    """One entry of a trade's append-only change-request history."""
    __tablename__ = "trade_change_requests"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    trade_id = Column(String, ForeignKey("trades.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)
    requested_by = Column(String, nullable=False)
    requested_at = Column(DateTime, nullable=False, default=utcnow)
    status = Column(String, nullable=False, default=ChangeRequestStatus.PENDING.value)
    resolved_at = Column(DateTime, nullable=True)

    trade = relationship("Trade", back_populates="change_requests")

    __table_args__ = (
        UniqueConstraint('trade_id', 'sequence', name='unique_change_request_sequence'),
    )

    def __repr__(self):
        return f"<ChangeRequest trade={self.trade_id} seq={self.sequence} status={self.status}>"
