"""SQLAlchemy model for the shared tenants table.

The config column stores ``{config, visibility, tier}`` JSON and is mapped
to a ConfigValue by ConfigValueType, which also upgrades the legacy flat
format on load.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, ForeignKey, String, func, text
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from src.tenancy.core.database import SharedBase, shared_metadata
from src.tenancy.core.exceptions import InvalidConfigShape
from src.tenancy.tenants.config_value import ConfigValue

logger = logging.getLogger(__name__)


class ConfigValueType(TypeDecorator):
    """JSON column holding a ConfigValue.

    Malformed payloads decode to an empty config so a single bad row never
    breaks serialization of the tenant.
    """

    impl = JSON
    cache_ok = True

    def process_bind_param(self, value: ConfigValue | dict | None, dialect: Any) -> dict | None:
        if value is None:
            return None
        if isinstance(value, ConfigValue):
            return value.to_dict()
        return ConfigValue.from_stored(value).to_dict() if value else None

    def process_result_value(self, value: Any, dialect: Any) -> ConfigValue:
        try:
            decoded = ConfigValue.from_stored(value)
        except InvalidConfigShape:
            logger.warning("Invalid tenant config payload, falling back to empty config")
            return ConfigValue()
        return decoded if decoded is not None else ConfigValue()


class TenantModel(SharedBase):
    """Registered tenant.

    ``public_id`` is the only identifier that leaves the service. Rows are
    soft-deleted through ``deleted_at``.
    """

    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
        default=uuid.uuid4,
    )
    public_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    identifier: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey(f"{shared_metadata.schema}.tenants.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"))
    config: Mapped[ConfigValue | None] = mapped_column(ConfigValueType, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )

    parent: Mapped[TenantModel | None] = relationship(
        "TenantModel",
        remote_side="TenantModel.id",
        lazy="joined",
        join_depth=1,
    )
