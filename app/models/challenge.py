from sqlalchemy import Column, String, DateTime, Text, Integer, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.clock import utcnow
import enum
import uuid

class ChallengeDifficulty(str, enum.Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"

class ChallengeStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"

class UserChallengeStatus(str, enum.Enum):
    ACTIVE = "active"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

class Challenge(Base):
    __tablename__ = "challenges"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    difficulty = Column(String, nullable=False, default=ChallengeDifficulty.BEGINNER.value)
    status = Column(String, nullable=False, default=ChallengeStatus.DRAFT.value)
    xp_reward = Column(Integer, nullable=True)  # Overrides the difficulty default when set
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    participants = relationship("UserChallenge", back_populates="challenge", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Challenge id={self.id} title={self.title} status={self.status}>"

class UserChallenge(Base):
    """A user's participation in a challenge, keyed "{user_id}_{challenge_id}"."""
    __tablename__ = "user_challenges"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    challenge_id = Column(String, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, nullable=False, default=UserChallengeStatus.ACTIVE.value)
    progress = Column(Integer, nullable=False, default=0)
    joined_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    challenge = relationship("Challenge", back_populates="participants")

    @staticmethod
    def make_id(user_id: str, challenge_id: str) -> str:
        return f"{user_id}_{challenge_id}"

    @staticmethod
    def make_path(doc_id: str) -> str:
        return f"userChallenges/{doc_id}"

    @property
    def path(self) -> str:
        return self.make_path(self.id)

    def __repr__(self):
        return f"<UserChallenge id={self.id} status={self.status} progress={self.progress}>"
