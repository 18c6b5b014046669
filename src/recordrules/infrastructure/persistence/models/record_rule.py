"""SQLAlchemy model for the record_rules table.

Record rules store row-level security rules for entity records.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from recordrules.infrastructure.persistence.database import Base


class RecordRuleModel(Base):
    """SQLAlchemy model for the record_rules table.

    Attributes:
        id: Primary key (UUID string).
        name: Human-readable label.
        entity_name: Entity type the rule governs.
        domain: JSON list of [field, operator, value] conditions.
        groups: JSON list of group names.
        perm_read: Participates in read decisions.
        perm_write: Participates in write decisions.
        perm_create: Participates in create decisions.
        perm_delete: Participates in delete decisions.
        is_global: Applies to every identity.
        is_active: Participates in decisions at all.
        plugin_id: Owning plugin, NULL for core rules.
        created_at: Timestamp when the rule was created.
        updated_at: Timestamp when the rule was last updated.
    """

    __tablename__ = "record_rules"
    __table_args__ = (Index("ix_record_rules_entity_active", "entity_name", "is_active"),)

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        comment="Record rule ID (UUID)",
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    domain: Mapped[list[Any]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="List of [field, operator, value] conditions",
    )
    groups: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Permission flags
    perm_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    perm_write: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    perm_create: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    perm_delete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_global: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    plugin_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
        comment="Owning plugin (NULL for core rules)",
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<RecordRule(id={self.id}, entity_name={self.entity_name}, name={self.name})>"
