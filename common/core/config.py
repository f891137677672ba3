from typing import Optional, List
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.core.constants import Environment


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment Profile
    environment: Environment = Environment.LOCAL

    # API Settings
    app_name: str = "Tenant Billing API"
    api_version: str = "v1"
    debug: bool = False

    # Database Components
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "billing"
    db_use_nullpool: bool = False
    db_pool_size: int = 10
    db_pool_overflow: int = 5

    @property
    def database_url(self) -> str:
        """Construct database URL from components."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # Rate limiting (slowapi storage, e.g. memory:// or redis://host:6379/0)
    rate_limit_storage_uri: str = "memory://"
    rate_limit_defaults: List[str] = ["10/second", "300/minute"]

    # OpenTelemetry
    otel_service_name: str = "tenant-billing"
    otel_service_version: str = "0.1.0"

    # Axiom (traces are only exported when a token is configured)
    axiom_token: str = ""
    axiom_dataset: str = ""

    app_base_url: str = "http://localhost:3000"

    @property
    def cors_allowed_origins(self) -> List[str]:
        """Auto-select CORS origins based on environment."""
        if self.environment == Environment.LOCAL:
            return [
                "http://localhost:3000",
                "http://localhost:3001",
            ]
        return [self.app_base_url]

    # Billing - lifecycle
    billing_currency: str = "BRL"
    trial_duration_days: int = 7
    trial_expiry_grace_days: int = 0  # 0 = hard cutover when a trial ends
    past_due_grace_days: int = 28
    checkout_session_ttl_minutes: int = 60
    usage_alert_thresholds: List[int] = [80, 100]

    # Billing - AbacatePay (payments)
    abacatepay_api_key: str = ""
    abacatepay_base_url: str = "https://api.abacatepay.com/v1"
    abacatepay_timeout_seconds: float = 10.0
    abacatepay_billing_list_timeout_seconds: float = 20.0
    abacatepay_max_retries: int = 2
    abacatepay_billing_list_retries: int = 1
    # Comma-separated hosts; subdomains of each host are trusted as well
    abacatepay_allowed_checkout_hosts: str = "abacatepay.com"

    # Billing - inbound webhooks
    abacatepay_webhook_secret: str = ""
    abacatepay_webhook_signature_key: str = ""
    webhook_allowed_ips: str = ""
    webhook_rate_limit: str = "120/minute"
    webhook_max_body_bytes: int = 256 * 1024

    # Notifications (log-only unless a relay is configured)
    notification_webhook_url: Optional[str] = None
    notification_timeout_seconds: float = 5.0

    @property
    def allowed_checkout_hosts(self) -> List[str]:
        """Trusted checkout hosts, lower-cased, falling back to the provider domain."""
        hosts = [
            host.strip().lower()
            for host in self.abacatepay_allowed_checkout_hosts.split(",")
            if host.strip()
        ]
        return hosts or ["abacatepay.com"]

    @property
    def allowed_webhook_ips(self) -> List[str]:
        return [ip.strip() for ip in self.webhook_allowed_ips.split(",") if ip.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION


settings = Settings()
