"""Application settings using Pydantic for environment-based configuration."""

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

from payment_queue.domain.models import CardType

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class Settings(BaseSettings):
    """Settings loaded from environment variables (or a local .env file)."""

    # Queue transport
    queue_url: str | None = Field(default=None, description="SQS queue URL to consume charges from")
    dead_letter_queue_url: str | None = Field(
        default=None, description="SQS queue receiving messages that keep failing"
    )
    aws_region: str = Field(default="us-west-2", description="AWS region of the queues")
    sqs_endpoint_url: str | None = Field(default=None, description="Override SQS endpoint (localstack)")

    # Consumer loop
    batch_size: int = Field(default=10, ge=1, le=10, description="Messages requested per receive")
    wait_time_seconds: int = Field(default=20, ge=1, le=20, description="Long-poll wait per receive")
    jitter_min_ms: int = Field(default=1, ge=0, description="Lower bound of post-charge delay")
    jitter_max_ms: int = Field(default=1500, ge=0, description="Upper bound of post-charge delay")
    slow_warning_ms: int = Field(default=2700, ge=0, description="Log a warning above this duration")
    slow_error_ms: int = Field(default=3600, ge=0, description="Log an error above this duration")
    max_receive_count: int = Field(
        default=5, ge=0, description="Dead-letter a failing message at this many receives (0 disables)"
    )
    receive_backoff_initial_seconds: float = Field(default=1.0, gt=0, description="First receive retry delay")
    receive_backoff_max_seconds: float = Field(default=30.0, gt=0, description="Receive retry delay cap")

    # Charge rules
    accepted_networks: list[CardType] = Field(
        default=[CardType.VISA, CardType.MASTERCARD],
        description='Card networks allowed to charge, JSON list (e.g. ["visa","mastercard"])',
    )

    # Database
    database_url: str | None = Field(default=None, description="Full SQLAlchemy URL; overrides db_* fields")
    db_host: str = Field(default="localhost", description="Database host")
    db_port: int = Field(default=3306, description="Database port")
    db_user: str = Field(default="root", description="Database user")
    db_password: str = Field(default="", description="Database password")
    db_name: str = Field(default="payments", description="Database name")
    rebuild_indexes: bool = Field(
        default=False, description="Drop and recreate transaction indexes once at start-up"
    )

    # Temporal
    temporal_address: str = Field(default="localhost:7233", description="Temporal frontend address")
    temporal_task_queue: str = Field(default="payments", description="Task queue for charge workflows")

    log_level: str = Field(default="INFO", description="Logging level")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def check_ranges(self) -> "Settings":
        if self.jitter_min_ms > self.jitter_max_ms:
            raise ValueError("jitter_min_ms must not exceed jitter_max_ms")
        if self.slow_warning_ms > self.slow_error_ms:
            raise ValueError("slow_warning_ms must not exceed slow_error_ms")
        return self

    @property
    def sqlalchemy_url(self) -> str | URL:
        if self.database_url:
            return self.database_url
        return URL.create(
            "mysql+aiomysql",
            username=self.db_user,
            password=self.db_password or None,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
