from pydantic import BaseModel, Field, ValidationError

from shared.exceptions import ConfigurationError
from shared.helper.HelperConfig import HelperConfig


class EnvConfig(BaseModel):
    """
    Represents a single configuration parameter required for a env setting.

    Attributes:
        env_key (str): The key/name of the environment variable to read.
        val_type (str): The expected type of the environment variable's value. Supported types are "string", "number", "bool", and "list".
        default (str | int | bool | list | None): An optional default value if the environment variable is not set. If None, the variable is required and an error will be raised if it is not set.
    """

    env_key: str
    val_type: str
    default: str | int | float | bool | list | None = None


class IngestionSettings(BaseModel):
    """Settings value object built once at startup and passed to the ingestion service.

    Attributes:
        tenant_id:          Tenant scope stamped on every chunk and every query.
        group_id:           Group scope stamped on every chunk and every query.
        vector_size:        Fixed embedding dimension of this deployment.
        chunk_max_size:     Maximum characters per chunk.
        chunk_overlap:      Overlap fraction between consecutive chunks (0 <= x < 1).
        concurrency:        Documents processed in parallel per source.
        queue_size:         Capacity of the producer/consumer queue per source.
    """

    tenant_id: str = "0"
    group_id: str = "0"
    vector_size: int = Field(default=1536, gt=0)
    chunk_max_size: int = Field(default=1000, gt=0)
    chunk_overlap: float = Field(default=0.1, ge=0.0, lt=1.0)
    concurrency: int = Field(default=5, gt=0)
    queue_size: int = Field(default=20, gt=0)

    @classmethod
    def from_config(cls, helper_config: HelperConfig) -> "IngestionSettings":
        """Read all ingestion settings from the environment.

        Args:
            helper_config (HelperConfig): The configuration helper.

        Returns:
            IngestionSettings: The resolved settings.

        Raises:
            ConfigurationError: If a setting is missing or out of range.
        """
        try:
            return cls(
                tenant_id=helper_config.get_string_val("TENANT_ID", default="0"),
                group_id=helper_config.get_string_val("GROUP_ID", default="0"),
                vector_size=int(helper_config.get_number_val("EMBED_VECTOR_SIZE", default=1536)),
                chunk_max_size=int(helper_config.get_number_val("CHUNK_MAX_SIZE", default=1000)),
                chunk_overlap=float(helper_config.get_number_val("CHUNK_OVERLAP", default=0.1)),
                concurrency=int(helper_config.get_number_val("INGEST_CONCURRENCY", default=5)),
                queue_size=int(helper_config.get_number_val("INGEST_QUEUE_SIZE", default=20)),
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid ingestion settings: {e}") from e
