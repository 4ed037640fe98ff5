from sqlalchemy import Column, String, DateTime, Text, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.clock import utcnow
import uuid

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, nullable=False)  # connection | trade | trade_completion | trade_reminder | system
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False, default="")
    related_id = Column(String, nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="notifications")

    @property
    def path(self) -> str:
        return f"notifications/{self.id}"

    def __repr__(self):
        return f"<Notification id={self.id} user={self.user_id} type={self.type} read={self.read}>"
