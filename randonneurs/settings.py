from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Security
    RO_SECRET_KEY: str = "dev-secret-change-me"
    RO_ADMIN_EMAIL: str = ""
    RO_ADMIN_PASSWORD: str = ""
    RO_ADMIN_NAME: str = "Administrator"
    COOKIE_SECURE: bool = False  # set True behind HTTPS

    # Database
    RO_DB_URL: str = "sqlite:///./randonneurs.db"

    # Club
    CURRENT_SEASON: int = 2026
    CLUB_TIMEZONE: str = "America/Toronto"
    SITE_URL: str = "https://randonneursontario.ca"

    # Integrations
    CCN_ENDPOINT: str = ""
    CRON_SECRET: str = ""

    # Email (SMTP); empty host disables sending
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    EMAIL_FROM: str = "noreply@randonneursontario.ca"
    VP_ADMIN_EMAIL: str = "vp-admin@randonneursontario.ca"

    # Files
    UPLOAD_DIR: str = "./uploads"
    CONTENT_DIR: str = "./content"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
