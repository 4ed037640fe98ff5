from app.schemas.user import UserBase, UserResponse, CurrentUser, UserUpdate
from app.schemas.connections import (
    ConnectionCreate, ConnectionStatusUpdate, ConnectionResponse, ConnectionUpdateResponse,
    ConnectionsListResponse, ReconcileReportResponse
)
from app.schemas.trades import (
    TradeCreate, ProposalCreate, ProposalResponseRequest, CompletionRequest, ChangeRequestCreate,
    CancelRequest, DisputeRequest, ChangeRequestResponse, ProposalResponse, TradeResponse, TradesListResponse
)
from app.schemas.challenges import (
    ChallengeCreate, ChallengeResponse, ProgressUpdate, UserChallengeResponse, UserChallengesListResponse
)
from app.schemas.gamification import XpTransactionResponse, UserXPResponse
from app.schemas.portfolio import PortfolioItemResponse, PortfolioItemUpdate
from app.schemas.notifications import NotificationResponse, NotificationsListResponse

__all__ = [
    "UserBase", "UserResponse", "CurrentUser", "UserUpdate",
    "ConnectionCreate", "ConnectionStatusUpdate", "ConnectionResponse", "ConnectionUpdateResponse",
    "ConnectionsListResponse", "ReconcileReportResponse",
    "TradeCreate", "ProposalCreate", "ProposalResponseRequest", "CompletionRequest", "ChangeRequestCreate",
    "CancelRequest", "DisputeRequest", "ChangeRequestResponse", "ProposalResponse", "TradeResponse",
    "TradesListResponse",
    "ChallengeCreate", "ChallengeResponse", "ProgressUpdate", "UserChallengeResponse", "UserChallengesListResponse",
    "XpTransactionResponse", "UserXPResponse",
    "PortfolioItemResponse", "PortfolioItemUpdate",
    "NotificationResponse", "NotificationsListResponse",
]
