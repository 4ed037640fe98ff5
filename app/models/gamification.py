from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.clock import utcnow
import uuid

class UserXP(Base):
    """Running XP total and level for a user."""
    __tablename__ = "user_xp"

    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    total_xp = Column(Integer, nullable=False, default=0)
    current_level = Column(Integer, nullable=False, default=1)
    xp_to_next_level = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_updated = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="xp")

    def __repr__(self) -> str:
        return f"<UserXP user_id={self.user_id} total={self.total_xp} level={self.current_level}>"

class XpTransaction(Base):
    """Append-only XP ledger entry."""
    __tablename__ = "xp_transactions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    source = Column(String, nullable=False)
    source_id = Column(String, nullable=False, default="")
    description = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'source', 'source_id', name='unique_xp_award'),
    )

    def __repr__(self) -> str:
        return f"<XpTransaction user_id={self.user_id} amount={self.amount} source={self.source}:{self.source_id}>"
