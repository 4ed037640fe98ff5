from sqlalchemy import Column, String, DateTime, Text, Boolean, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.clock import utcnow
import uuid

class PortfolioItem(Base):
    """A showcase entry generated from a completed trade or challenge."""
    __tablename__ = "portfolio_items"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    source_type = Column(String, nullable=False)  # trade | challenge
    source_id = Column(String, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    skills = Column(JSON, nullable=False, default=list)
    evidence = Column(JSON, nullable=False, default=list)
    collaborators = Column(JSON, nullable=False, default=list)
    completed_at = Column(DateTime, nullable=True)
    visible = Column(Boolean, nullable=False, default=True)
    featured = Column(Boolean, nullable=False, default=False)
    pinned = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="portfolio_items")

    __table_args__ = (
        UniqueConstraint('user_id', 'source_type', 'source_id', name='unique_portfolio_source'),
    )

    @property
    def path(self) -> str:
        return f"users/{self.user_id}/portfolio/{self.id}"

    def __repr__(self):
        return f"<PortfolioItem id={self.id} user={self.user_id} source={self.source_type}:{self.source_id}>"
