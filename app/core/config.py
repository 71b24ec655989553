from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Настройки приложения и окружения.
    app_name: str = "Popularity Contest"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    debug: bool = False
    database_url: str
    admin_key: str
    secret_key: str = "change_me"
    session_max_age: int = 60 * 60 * 12
    log_level: str = "INFO"
    create_schema_on_startup: bool = False
    tie_breaker_username: str = "system-admin"
    max_admin_vote_weight: int = 10

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()
