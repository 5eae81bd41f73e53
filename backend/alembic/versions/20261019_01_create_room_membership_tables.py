"""create room membership tables

Revision ID: 20261019_01
Revises: 
Create Date: 2026-10-19 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


ROOM_ROLE = sa.Enum("owner", "moderator", "member", name="room_role")
ROOM_VISIBILITY = sa.Enum("public", "private", name="room_visibility")
INVITATION_STATUS = sa.Enum("pending", "accepted", "declined", "expired", name="invitation_status")
ACCESS_REQUEST_STATUS = sa.Enum("pending", "approved", "rejected", name="access_request_status")
MODERATION_ACTION = sa.Enum("promote", "demote", "kick", name="moderation_action")
FRIEND_REQUEST_STATUS = sa.Enum("pending", "accepted", "declined", name="friend_request_status")
NOTIFICATION_TYPE = sa.Enum("room_invite", "room_access_request", name="notification_type")


def _timestamp(name: str, *, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("login", sa.String(length=64), nullable=False, unique=True),
        sa.Column("display_name", sa.String(length=128), nullable=True),
        _timestamp("created_at"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "friend_links",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("requester_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("addressee_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", FRIEND_REQUEST_STATUS, nullable=False, server_default="pending"),
        _timestamp("created_at"),
        sa.UniqueConstraint("requester_id", "addressee_id", name="uq_friend_link_pair"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "rooms",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=True),
        sa.Column("visibility", ROOM_VISIBILITY, nullable=False, server_default="public"),
        sa.Column("code", sa.String(length=16), nullable=False, unique=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("current_members", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("created_at"),
        _timestamp("last_activity"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "room_members",
        sa.Column("room_id", sa.Integer(), sa.ForeignKey("rooms.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role", ROOM_ROLE, nullable=False, server_default="member"),
        sa.Column("is_favorite", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_silenced", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("joined_at"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_room_members_user_id", "room_members", ["user_id"])

    op.create_table(
        "room_invitations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("room_id", sa.Integer(), sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("invitee_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("inviter_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", INVITATION_STATUS, nullable=False, server_default="pending"),
        _timestamp("created_at"),
        _timestamp("expires_at", nullable=True),
        _timestamp("responded_at", nullable=True),
        mysql_charset="utf8mb4",
    )
    op.create_index(
        "ix_room_invitations_lookup", "room_invitations", ["room_id", "invitee_id", "status"]
    )

    op.create_table(
        "room_access_requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("room_id", sa.Integer(), sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("status", ACCESS_REQUEST_STATUS, nullable=False, server_default="pending"),
        sa.Column("reviewed_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _timestamp("reviewed_at", nullable=True),
        _timestamp("created_at"),
        mysql_charset="utf8mb4",
    )
    op.create_index(
        "ix_room_access_requests_lookup", "room_access_requests", ["room_id", "user_id", "status"]
    )

    op.create_table(
        "room_invite_links",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("room_id", sa.Integer(), sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False, unique=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        _timestamp("created_at"),
        _timestamp("expires_at"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_room_invite_links_room_id", "room_invite_links", ["room_id"])

    op.create_table(
        "room_moderation_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("room_id", sa.Integer(), sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("moderator_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("target_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("action", MODERATION_ACTION, nullable=False),
        _timestamp("created_at"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_room_moderation_logs_room_id", "room_moderation_logs", ["room_id"])

    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        _timestamp("created_at"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "room_conversations",
        sa.Column("room_id", sa.Integer(), sa.ForeignKey("rooms.id", ondelete="CASCADE"), primary_key=True),
        sa.Column(
            "conversation_id",
            sa.Integer(),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "conversation_participants",
        sa.Column(
            "conversation_id",
            sa.Integer(),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        _timestamp("joined_at"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "conversation_id",
            sa.Integer(),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sender_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _timestamp("created_at"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("room_id", sa.Integer(), sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=True),
        sa.Column("type", NOTIFICATION_TYPE, nullable=False),
        sa.Column("sender_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("related_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(length=128), nullable=False),
        sa.Column("message", sa.String(length=512), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_room_id", "notifications", ["room_id"])


def downgrade() -> None:
    op.drop_index("ix_notifications_room_id", table_name="notifications")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_messages_conversation_id", table_name="messages")
    op.drop_table("messages")
    op.drop_table("conversation_participants")
    op.drop_table("room_conversations")
    op.drop_table("conversations")
    op.drop_index("ix_room_moderation_logs_room_id", table_name="room_moderation_logs")
    op.drop_table("room_moderation_logs")
    op.drop_index("ix_room_invite_links_room_id", table_name="room_invite_links")
    op.drop_table("room_invite_links")
    op.drop_index("ix_room_access_requests_lookup", table_name="room_access_requests")
    op.drop_table("room_access_requests")
    op.drop_index("ix_room_invitations_lookup", table_name="room_invitations")
    op.drop_table("room_invitations")
    op.drop_index("ix_room_members_user_id", table_name="room_members")
    op.drop_table("room_members")
    op.drop_table("rooms")
    op.drop_table("friend_links")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in (
        NOTIFICATION_TYPE,
        FRIEND_REQUEST_STATUS,
        MODERATION_ACTION,
        ACCESS_REQUEST_STATUS,
        INVITATION_STATUS,
        ROOM_VISIBILITY,
        ROOM_ROLE,
    ):
        enum.drop(bind, checkfirst=True)
