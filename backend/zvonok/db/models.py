from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, DateTime, ForeignKey, Text, Index,
    UniqueConstraint, CheckConstraint, event,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from zvonok.db.database import Base
from zvonok.db.enums import ChannelType


class User(Base):
    """Account row owned by the user service; kept here for foreign keys."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    display_name = Column(String(100))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Server(Base):
    __tablename__ = "servers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    max_members = Column(Integer, default=10000, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    owner = relationship("User")
    roles = relationship("ServerRole", back_populates="server", passive_deletes=True)
    members = relationship("ServerMember", back_populates="server", passive_deletes=True)
    folders = relationship("ChannelFolder", back_populates="server", passive_deletes=True)


class ServerRole(Base):
    __tablename__ = "server_roles"
    __table_args__ = (
        Index("ix_server_roles_server_active", "server_id", "is_active"),
    )

    id = Column(Integer, primary_key=True, index=True)
    server_id = Column(Integer, ForeignKey("servers.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    color = Column(String(7), default="#ffffff")
    position = Column(Integer, default=0, nullable=False)  # Display ordering only
    permissions = Column(BigInteger, default=0, nullable=False)
    mentionable = Column(Boolean, default=True)
    is_everyone = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    server = relationship("Server", back_populates="roles")


class ServerMember(Base):
    __tablename__ = "server_members"
    __table_args__ = (
        UniqueConstraint("user_id", "server_id", name="uq_server_member"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    server_id = Column(Integer, ForeignKey("servers.id", ondelete="CASCADE"), nullable=False)
    personal_permissions = Column(BigInteger, default=0, nullable=False)
    nickname = Column(String(32))
    is_active = Column(Boolean, default=True, nullable=False)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())
    left_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship("User")
    server = relationship("Server", back_populates="members")
    member_roles = relationship("ServerMemberRole", back_populates="member", passive_deletes=True)


class ServerMemberRole(Base):
    __tablename__ = "server_member_roles"
    __table_args__ = (
        UniqueConstraint("member_id", "role_id", name="uq_server_member_role"),
    )

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, ForeignKey("server_members.id", ondelete="CASCADE"), nullable=False)
    role_id = Column(Integer, ForeignKey("server_roles.id", ondelete="CASCADE"), nullable=False)
    assigned_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    assigned_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    member = relationship("ServerMember", back_populates="member_roles")
    role = relationship("ServerRole")


class ChannelFolder(Base):
    __tablename__ = "channel_folders"

    id = Column(Integer, primary_key=True, index=True)
    server_id = Column(Integer, ForeignKey("servers.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    position = Column(Integer, default=0)
    collapsed = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    server = relationship("Server", back_populates="folders")
    channels = relationship("Channel", back_populates="folder", passive_deletes=True)


class Channel(Base):
    __tablename__ = "channels"

    id = Column(Integer, primary_key=True, index=True)
    folder_id = Column(Integer, ForeignKey("channel_folders.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    type = Column(SAEnum(ChannelType, name="channeltype"), default=ChannelType.text, nullable=False)
    topic = Column(Text)
    position = Column(Integer, default=0)
    user_limit = Column(Integer, default=10)  # Voice channels
    slow_mode_seconds = Column(Integer, nullable=True)
    nsfw = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    folder = relationship("ChannelFolder", back_populates="channels")


class FolderPermissionOverride(Base):
    __tablename__ = "folder_permission_overrides"
    __table_args__ = (
        UniqueConstraint("folder_id", "role_id", name="uq_folder_override_role"),
        UniqueConstraint("folder_id", "user_id", name="uq_folder_override_user"),
        CheckConstraint(
            "(role_id IS NULL AND user_id IS NOT NULL) OR (role_id IS NOT NULL AND user_id IS NULL)",
            name="ck_folder_override_target",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    folder_id = Column(Integer, ForeignKey("channel_folders.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("server_roles.id", ondelete="CASCADE"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    allowed_permissions = Column(BigInteger, default=0, nullable=False)
    denied_permissions = Column(BigInteger, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    folder = relationship("ChannelFolder")
    role = relationship("ServerRole")
    user = relationship("User")


class ChannelPermissionOverride(Base):
    __tablename__ = "channel_permission_overrides"
    __table_args__ = (
        UniqueConstraint("channel_id", "role_id", name="uq_channel_override_role"),
        UniqueConstraint("channel_id", "user_id", name="uq_channel_override_user"),
        CheckConstraint(
            "(role_id IS NULL AND user_id IS NOT NULL) OR (role_id IS NOT NULL AND user_id IS NULL)",
            name="ck_channel_override_target",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    channel_id = Column(Integer, ForeignKey("channels.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("server_roles.id", ondelete="CASCADE"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    allowed_permissions = Column(BigInteger, default=0, nullable=False)
    denied_permissions = Column(BigInteger, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    channel = relationship("Channel")
    role = relationship("ServerRole")
    user = relationship("User")


def validate_override_row(mapper, connection, target) -> None:
    """Reject override rows that target both a role and a user, or neither.

    Registered for INSERT and UPDATE on both override tables so that no code
    path can persist a row the resolver cannot interpret.
    """
    from zvonok.services.overrides import validate_override_target

    validate_override_target(target.role_id, target.user_id)


for _override_model in (FolderPermissionOverride, ChannelPermissionOverride):
    event.listen(_override_model, "before_insert", validate_override_row)
    event.listen(_override_model, "before_update", validate_override_row)
