from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Required for webhooks and admin operations

    # Email (Resend)
    resend_api_key: Optional[str] = None
    email_from: str = "Afrikoni <hello@afrikoni.com>"

    # SMS (Africa's Talking)
    africastalking_username: str = "sandbox"
    africastalking_api_key: Optional[str] = None
    africastalking_sender_id: Optional[str] = None

    # Weather (OpenWeatherMap)
    openweather_api_key: Optional[str] = None

    # Payments (Flutterwave)
    flutterwave_secret_key: Optional[str] = None
    flutterwave_webhook_hash: Optional[str] = None
    frontend_url: str = "https://afrikoni.com"

    # Generative AI (Gemini)
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"

    # Identity verification (Smile ID)
    smile_id_partner_id: Optional[str] = None
    smile_id_api_key: Optional[str] = None
    smile_id_webhook_secret: Optional[str] = None  # falls back to smile_id_api_key
    smile_id_base_url: str = "https://testapi.smileidentity.com/v1"
    smile_id_callback_url: str = "https://afrikoni.com/api/v1/webhooks/smile-id"

    # Trade kernel
    hash_salt: str = "sovereign_rail_2026"

    # AWS S3 (trade documents; Supabase Storage is used when unset)
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-1"
    s3_bucket_name: Optional[str] = None

    # Schedulers
    enable_schedulers: bool = False
    rfq_expiry_check_seconds: int = 300

    # App
    app_name: str = "afrikoni-backend"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
