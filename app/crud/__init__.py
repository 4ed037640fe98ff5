from app.crud.user import (
    get_user,
    create_user,
    sync_user_from_token,
    update_user,
)
from app.crud.connections import ConnectionsCRUD, ConnectionUpdateResult
from app.crud.trades import TradesCRUD

__all__ = [
    # User operations
    "get_user",
    "create_user",
    "sync_user_from_token",
    "update_user",

    # Connection operations
    "ConnectionsCRUD",
    "ConnectionUpdateResult",

    # Trade operations
    "TradesCRUD",
]
