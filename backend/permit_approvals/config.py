from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )
    
    # Database
    database_url: str = "sqlite+aiosqlite:///./permits.db"
    
    # Links embedded in approval emails
    app_url: str = "http://localhost:8000"
    approval_page_path: str = "/permit-approval"
    approval_link_ttl_days: int = 7
    
    # Email
    email_from_name: str = "Permits Team"
    
    # App
    allowed_origins: str = ""
    debug: bool = False
    
    def get_frontend_url(self) -> str:
        """Base URL for links sent to recipients, without trailing slash."""
        return self.app_url.rstrip("/")


settings = Settings()
