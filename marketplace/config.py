from decimal import Decimal
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    env: str = "local"

    database_url: str = "sqlite:///./marketplace.db"
    sql_echo: bool = False

    # identity collaborator (JWT issued elsewhere, verified here)
    secret_key: str = "dev-secret-change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # slip storage
    server_url: str = "http://localhost:8000"
    upload_dir: str = "./uploads"
    slip_storage_backend: str = "local"  # local | r2
    max_slip_bytes: int = 5 * 1024 * 1024
    r2_account_id: Optional[str] = None
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_bucket_name: Optional[str] = None
    r2_public_base: Optional[str] = None

    # payment workflow
    slip_review_required: bool = False
    qr_expiry_minutes: int = 15
    currency: str = "THB"

    # coupons
    welcome_coupon_amount: Decimal = Decimal("100")
    welcome_coupon_ttl_hours: int = 24

    cart_mutation_retries: int = 3

    log_level: str = "INFO"
    log_json: bool = False

    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"


settings = Settings()
