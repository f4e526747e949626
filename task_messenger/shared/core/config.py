from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Task Messenger"

    # Glassix WhatsApp Messaging API
    GLASSIX_BASE_URL: str = "https://app.glassix.com"
    GLASSIX_API_KEY: str = ""
    GLASSIX_API_MODE: Literal["messages", "protocols"] = "messages"

    # Retry / rate limiting for outbound sends
    RETRY_ATTEMPTS: int = Field(default=3, ge=1, le=5)
    RETRY_BASE_MS: int = Field(default=300, ge=100, le=5000)
    DISPATCH_MAX_CONCURRENT: int = Field(default=3, ge=1)
    DISPATCH_MIN_INTERVAL_MS: int = Field(default=250, ge=0)
    DISPATCH_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    DRY_RUN: bool = False

    # CRM task fetching
    TASKS_QUERY_LIMIT: int = Field(default=200, gt=0)
    PAGED: bool = False
    BATCH_CONCURRENCY: int = Field(default=5, ge=1)
    TASK_CUSTOM_PHONE_FIELD: str = "Phone__c"
    KEEP_READY_ON_FAIL: bool = True

    # Template mapping spreadsheet
    XLSX_MAPPING_PATH: str = "message_mapping.xlsx"
    XLSX_SHEET: Optional[str] = None  # Sheet name or zero-based index, e.g. "Sheet2" or "1"
    FAIL_ON_EMPTY_TEMPLATES: bool = False
    TEMPLATE_OFFLOAD_THRESHOLD_BYTES: int = Field(default=1024 * 1024, ge=0)
    TEMPLATE_PARSE_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)

    # Rendering
    DEFAULT_LANG: Literal["he", "en"] = "he"
    TIMEZONE: str = "Asia/Jerusalem"

    # Phone numbers
    DEFAULT_COUNTRY: str = "IL"
    PERMIT_LANDLINES: bool = False
    ALLOWED_PHONE_PREFIXES: str = "+972"  # Comma-separated E.164 prefixes, empty = any

    # Process
    SHUTDOWN_GRACE_SECONDS: float = Field(default=10.0, ge=0)
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    @property
    def allowed_phone_prefixes(self) -> List[str]:
        return [p.strip() for p in self.ALLOWED_PHONE_PREFIXES.split(",") if p.strip()]


settings = Settings()
