"""Settings for version-trail.

Values are read from the environment with the VERSION_TRAIL_ prefix, e.g.
``VERSION_TRAIL_ENABLED=false`` starts the process with recording switched off.

Runtime capabilities (serializer instance, object changes adapter) are not
environment-loadable; they live on the Tracker and may be swapped at runtime.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the versioning engine.

    Environment variable prefix: VERSION_TRAIL_
    """

    service_name: str = "version-trail"

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    enabled: bool = Field(
        default=True,
        description="Initial value of the process-wide recording flag.",
    )
    save_changes: bool = Field(
        default=True,
        description="Store the serialized changeset (object_changes) on every version.",
    )
    timestamp_field: str = Field(
        default="updated_at",
        description="Item attribute whose post-event value becomes created_at of "
        "create and update versions. Falls back to the current time when absent.",
    )
    type_discriminator_field: str = Field(
        default="type",
        description="Item attribute holding the stored subclass tag used by reify.",
    )

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    serializer: Literal["json", "yaml"] = Field(
        default="json",
        description="Built-in serializer used when no serializer instance is supplied.",
    )
    datetime_precision: Literal["seconds", "microseconds"] = Field(
        default="microseconds",
        description="Precision kept for datetime and time values in stored snapshots.",
    )

    # -------------------------------------------------------------------------
    # Storage and HTTP surface
    # -------------------------------------------------------------------------

    database_url: str = Field(
        default="sqlite:///versions.db",
        description="SQLAlchemy URL for the SQL-backed version log.",
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL statements. Keep off: snapshots may contain sensitive values.",
    )
    api_prefix: str = Field(
        default="/api/v1",
        description="Prefix under which the read-only version router is mounted.",
    )
    configure_hook: str | None = Field(
        default=None,
        description="Import path (package.module:function) called with the Tracker "
        "on startup to register models and attach a repository.",
    )

    model_config = SettingsConfigDict(env_prefix="VERSION_TRAIL_")
