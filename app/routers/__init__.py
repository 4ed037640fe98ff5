# API Routers
from app.routers import users, connections, trades, challenges, notifications, admin

__all__ = ["users", "connections", "trades", "challenges", "notifications", "admin"]
