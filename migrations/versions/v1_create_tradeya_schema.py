"""Create TradeYa schema

Revision ID: v1
Revises: 
Create Date: 2026-10-18 00:00:00

Users, mirrored connection records and their sync issues, trades with
proposals and change-request history, challenges, gamification ledger,
portfolio items, notifications and the side-effect outbox.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'v1'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("photo_url", sa.String(), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default='false'),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    # Two rows per relationship, one in each user's connections
    op.create_table(
        "connections",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("owner_user_id", sa.String(), nullable=False),
        sa.Column("counterpart_user_id", sa.String(), nullable=False),
        sa.Column("initiator_user_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["owner_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["counterpart_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("owner_user_id", "counterpart_user_id", name="unique_connection_direction"),
    )
    op.create_index(op.f("ix_connections_owner_user_id"), "connections", ["owner_user_id"], unique=False)
    op.create_index(op.f("ix_connections_counterpart_user_id"), "connections", ["counterpart_user_id"], unique=False)

    op.create_table(
        "connection_sync_issues",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("owner_user_id", sa.String(), nullable=False),
        sa.Column("counterpart_user_id", sa.String(), nullable=False),
        sa.Column("expected_status", sa.String(), nullable=False),
        sa.Column("detail", sa.Text(), nullable=True),
        sa.Column("detected_at", sa.DateTime(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_connection_sync_issues_owner_user_id"), "connection_sync_issues", ["owner_user_id"], unique=False)
    op.create_index(op.f("ix_connection_sync_issues_counterpart_user_id"), "connection_sync_issues", ["counterpart_user_id"], unique=False)
    op.create_index("ix_sync_issues_open", "connection_sync_issues", ["resolved_at", "detected_at"], unique=False)

    op.create_table(
        "trades",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("creator_id", sa.String(), nullable=False),
        sa.Column("participant_id", sa.String(), nullable=True),
        sa.Column("skills_offered", sa.JSON(), nullable=False),
        sa.Column("skills_wanted", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="open"),
        sa.Column("accepted_at", sa.DateTime(), nullable=True),
        sa.Column("completion_requested_by", sa.String(), nullable=True),
        sa.Column("completion_requested_at", sa.DateTime(), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("completion_evidence", sa.JSON(), nullable=False),
        sa.Column("completion_confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("auto_completed", sa.Boolean(), nullable=False, server_default='false'),
        sa.Column("auto_completion_reason", sa.String(), nullable=True),
        sa.Column("reminders_sent", sa.Integer(), nullable=False, server_default='0'),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("dispute_reason", sa.Text(), nullable=True),
        sa.Column("dispute_details", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["creator_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["participant_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_trades_id"), "trades", ["id"], unique=False)
    op.create_index(op.f("ix_trades_creator_id"), "trades", ["creator_id"], unique=False)
    op.create_index(op.f("ix_trades_participant_id"), "trades", ["participant_id"], unique=False)
    op.create_index(op.f("ix_trades_status"), "trades", ["status"], unique=False)

    op.create_table(
        "trade_proposals",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("trade_id", sa.String(), nullable=False),
        sa.Column("proposer_user_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("message", sa.Text(), nullable=False, server_default=""),
        sa.Column("skills_offered", sa.JSON(), nullable=False),
        sa.Column("skills_wanted", sa.JSON(), nullable=False),
        sa.Column("evidence", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["trade_id"], ["trades.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["proposer_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_trade_proposals_id"), "trade_proposals", ["id"], unique=False)
    op.create_index(op.f("ix_trade_proposals_trade_id"), "trade_proposals", ["trade_id"], unique=False)
    op.create_index(op.f("ix_trade_proposals_proposer_user_id"), "trade_proposals", ["proposer_user_id"], unique=False)

    op.create_table(
        "trade_change_requests",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("trade_id", sa.String(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("requested_by", sa.String(), nullable=False),
        sa.Column("requested_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["trade_id"], ["trades.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("trade_id", "sequence", name="unique_change_request_sequence"),
    )
    op.create_index(op.f("ix_trade_change_requests_trade_id"), "trade_change_requests", ["trade_id"], unique=False)

    op.create_table(
        "challenges",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("difficulty", sa.String(), nullable=False, server_default="beginner"),
        sa.Column("status", sa.String(), nullable=False, server_default="draft"),
        sa.Column("xp_reward", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_challenges_id"), "challenges", ["id"], unique=False)

    # Keyed "{user_id}_{challenge_id}"
    op.create_table(
        "user_challenges",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("challenge_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default='0'),
        sa.Column("joined_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["challenge_id"], ["challenges.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_user_challenges_user_id"), "user_challenges", ["user_id"], unique=False)
    op.create_index(op.f("ix_user_challenges_challenge_id"), "user_challenges", ["challenge_id"], unique=False)

    op.create_table(
        "user_xp",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("total_xp", sa.Integer(), nullable=False, server_default='0'),
        sa.Column("current_level", sa.Integer(), nullable=False, server_default='1'),
        sa.Column("xp_to_next_level", sa.Integer(), nullable=False, server_default='0'),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "xp_transactions",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("source_id", sa.String(), nullable=False, server_default=""),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "source", "source_id", name="unique_xp_award"),
    )
    op.create_index(op.f("ix_xp_transactions_user_id"), "xp_transactions", ["user_id"], unique=False)

    op.create_table(
        "portfolio_items",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("source_type", sa.String(), nullable=False),
        sa.Column("source_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("skills", sa.JSON(), nullable=False),
        sa.Column("evidence", sa.JSON(), nullable=False),
        sa.Column("collaborators", sa.JSON(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("visible", sa.Boolean(), nullable=False, server_default='true'),
        sa.Column("featured", sa.Boolean(), nullable=False, server_default='false'),
        sa.Column("pinned", sa.Boolean(), nullable=False, server_default='false'),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "source_type", "source_id", name="unique_portfolio_source"),
    )
    op.create_index(op.f("ix_portfolio_items_id"), "portfolio_items", ["id"], unique=False)
    op.create_index(op.f("ix_portfolio_items_user_id"), "portfolio_items", ["user_id"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("related_id", sa.String(), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default='false'),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_notifications_id"), "notifications", ["id"], unique=False)
    op.create_index(op.f("ix_notifications_user_id"), "notifications", ["user_id"], unique=False)

    op.create_table(
        "outbox_events",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default='0'),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("claimed_at", sa.DateTime(), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_outbox_status_created", "outbox_events", ["status", "created_at"], unique=False)


def downgrade() -> None:
    # Drop all tables in reverse order
    op.drop_table("outbox_events")
    op.drop_table("notifications")
    op.drop_table("portfolio_items")
    op.drop_table("xp_transactions")
    op.drop_table("user_xp")
    op.drop_table("user_challenges")
    op.drop_table("challenges")
    op.drop_table("trade_change_requests")
    op.drop_table("trade_proposals")
    op.drop_table("trades")
    op.drop_table("connection_sync_issues")
    op.drop_table("connections")
    op.drop_table("users")
