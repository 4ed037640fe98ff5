from app.database import Base
from app.models.user import User
from app.models.connection import Connection, ConnectionStatus, ConnectionSyncIssue
from app.models.trade import Trade, TradeProposal, ChangeRequest, TradeStatus, ProposalStatus, ChangeRequestStatus
from app.models.challenge import Challenge, UserChallenge, ChallengeDifficulty, ChallengeStatus, UserChallengeStatus
from app.models.gamification import UserXP, XpTransaction
from app.models.portfolio import PortfolioItem
from app.models.notification import Notification
from app.models.outbox import OutboxEvent, OutboxStatus

__all__ = [
    "Base", "User",
    "Connection", "ConnectionStatus", "ConnectionSyncIssue",
    "Trade", "TradeProposal", "ChangeRequest", "TradeStatus", "ProposalStatus", "ChangeRequestStatus",
    "Challenge", "UserChallenge", "ChallengeDifficulty", "ChallengeStatus", "UserChallengeStatus",
    "UserXP", "XpTransaction", "PortfolioItem", "Notification", "OutboxEvent", "OutboxStatus"
]
