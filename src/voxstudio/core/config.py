"""Configuration management for VoxStudio Engine."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    ENV: str = "local"
    SERVICE_NAME: str = "voxstudio-engine"
    SERVICE_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # Document store selection
    STORE_BACKEND: str = "local"  # "graph" or "local"

    # Microsoft Graph / SharePoint
    AZURE_TENANT_ID: str = ""
    AZURE_CLIENT_ID: str = ""
    AZURE_CLIENT_SECRET: str = ""
    GRAPH_BASE_URL: str = "https://graph.microsoft.com/v1.0"
    GRAPH_LOGIN_URL: str = "https://login.microsoftonline.com"
    SHAREPOINT_SITE_PATH: str = ""  # e.g. contoso.sharepoint.com:/sites/Studio
    GRAPH_REQUEST_TIMEOUT: int = 60  # seconds

    # Local document store (development)
    LOCAL_STORE_PATH: str = "data/library"
    LOCAL_SESSION_TTL_MINUTES: int = 15
    PUBLIC_BASE_URL: str = "http://localhost:8080"

    # Upload constraints
    UPLOAD_CHUNK_SIZE_MB: int = 5  # Stays under intermediary request-size limits
    MAX_UPLOAD_MB: int = 4096
    DEFAULT_CONFLICT_POLICY: str = "replace"

    # Voice metadata cache
    VOICE_CACHE_CAPACITY: int = 10
    VOICE_CACHE_QUOTA_BYTES: int = 5 * 1024 * 1024

    @property
    def upload_chunk_size_bytes(self) -> int:
        """Convert UPLOAD_CHUNK_SIZE_MB to bytes."""
        return self.UPLOAD_CHUNK_SIZE_MB * 1024 * 1024

    @property
    def max_upload_bytes(self) -> int:
        """Convert MAX_UPLOAD_MB to bytes."""
        return self.MAX_UPLOAD_MB * 1024 * 1024

    @property
    def graph_configured(self) -> bool:
        """True when all client-credential settings are present."""
        return bool(self.AZURE_TENANT_ID and self.AZURE_CLIENT_ID and self.AZURE_CLIENT_SECRET)


# Singleton settings instance
settings = Settings()
