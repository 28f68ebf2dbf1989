from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Asset Loan Management API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://postgres:postgres@db:5432/assetdesk_db"
    TEST_DATABASE_URL: str = "postgresql+asyncpg://postgres:postgres@db:5432/assetdesk_test_db"

    # JWT (tokens are issued by the external identity service)
    JWT_SECRET_KEY: str = "change-me-to-a-random-secret-key-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Logging
    LOG_LEVEL: str = "INFO"

    # Overdue checker
    OVERDUE_CHECK_ENABLED: bool = False
    OVERDUE_CHECK_INTERVAL: int = 86400

    # Where returned assets are shelved
    STORAGE_LOCATION: str = "Gudang Inventori"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


settings = Settings()
