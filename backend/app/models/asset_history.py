"""Audit trail of mutations applied to assets."""

from __future__ import annotations

import enum

from sqlalchemy import JSON, Column, DateTime, Enum, Index, String, Text, func

from ..database import Base
from ..db_types import GUID, new_guid


class AssetHistoryAction(str, enum.Enum):
    """Actions tracked in the asset history."""

    CREATE = "create"
    UPDATE = "update"
    ASSIGN = "assign"
    UNASSIGN = "unassign"
    STATUS_CHANGE = "status_change"
    INSTALL_COMPONENT = "install_component"
    REMOVE_COMPONENT = "remove_component"
    SOFT_DELETE = "soft_delete"
    RESTORE = "restore"
    PURGE = "purge"
    SEAT_RELEASE = "seat_release"


class AssetHistory(Base):
    """One entry per committed asset mutation.

    Rows are keyed by the asset identifier without a foreign key so the trail
    outlives a permanent purge of the asset.
    """

    __tablename__ = "asset_history"

    id = Column("history_id", GUID(), primary_key=True, default=new_guid)
    asset_id = Column(GUID(), nullable=False)
    asset_tag = Column(String(40), nullable=False)
    action = Column(
        Enum(
            AssetHistoryAction,
            name="asset_history_action_enum",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            native_enum=False,
        ),
        nullable=False,
    )
    previous_status = Column(String(32), nullable=True)
    new_status = Column(String(32), nullable=True)
    changes = Column(JSON, nullable=True)
    actor_id = Column(String(120), nullable=True)
    source = Column(String(64), nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


Index("asset_history_asset_idx", AssetHistory.asset_id, AssetHistory.created_at)
