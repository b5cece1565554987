from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://app:devpassword@db:5432/artmint"
    REDIS_URL: str = "redis://redis:6379/0"

    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""

    JWT_SECRET_KEY: str = ""
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Public origin of the web app; checkout redirects land here
    APP_URL: str = "http://localhost:3000"

    # External asset store / CDN
    CMS_API_URL: str = "http://cms:8080/v1"
    CMS_API_KEY: str = ""
    CMS_PUBLISH_AUTOMATION_URL: str = ""
    CMS_TIMEOUT_SECONDS: float = 30.0

    DEFAULT_CURRENCY: str = "USD"

    APP_ENV: str = "development"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
