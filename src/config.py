from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    supabase_url: str
    supabase_service_role_key: str
    supabase_jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"
    public_site_url: str = "http://localhost:3000"
    review_link_default_expiry_days: int = 7
    review_link_max_expiry_days: int = 30
    client_invite_default_expiry_days: int = 7
    client_invite_max_expiry_days: int = 30
    client_invite_min_password_length: int = 8
    plugin_stale_grace_multiplier: int = 3
    osrm_base_url: str = "https://router.project-osrm.org"
    osrm_timeout_seconds: float = 7.0
    open_meteo_base_url: str = "https://api.open-meteo.com"
    nominatim_base_url: str = "https://nominatim.openstreetmap.org"
    nominatim_user_agent: str = "StudioHQ/0.1 (ops@studio-hq.local)"
    geocode_country_codes: str | None = "pt"
    weather_timezone: str = "Europe/Lisbon"
    weather_forecast_days: int = 7
    weather_timeout_seconds: float = 7.0
    dropbox_client_id: str | None = None
    dropbox_client_secret: str | None = None
    dropbox_redirect_uri: str | None = None
    dropbox_token_secret: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
