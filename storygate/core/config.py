"""
Application configuration.
All settings are loaded from environment variables (or .env).
Defaults target a single-node install: SQLite file store, in-process ad sessions.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # Comma separated. Empty = default list in main.py.
    cors_origins: str = ""

    # ===========================================
    # DATABASE (entitlements, purchase ledger, ad completions)
    # ===========================================
    database_url: str = "sqlite:///./userData/storygate.db"
    db_pool_size: int = 10
    db_max_overflow: int = 20

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"

    # ===========================================
    # ENTITLEMENTS
    # ===========================================
    default_starting_coins: int = 1000

    # ===========================================
    # STORY DATA
    # ===========================================
    # Script JSON exported by the editor: {"nodes": {"<id>": {...}}}
    story_data_path: str = "resources/story.json"

    # ===========================================
    # CATALOGS (JSON)
    # ===========================================
    coin_packages: str = (
        '[{"package_id": "pack_100", "name": "Small coin bag", "coins": 100, "price": 0.99,'
        ' "currency": "USD", "store_product_id": "com.storygate.coins.100"},'
        ' {"package_id": "pack_500", "name": "Medium coin bag", "coins": 500, "price": 3.99,'
        ' "currency": "USD", "store_product_id": "com.storygate.coins.500"},'
        ' {"package_id": "pack_1000", "name": "Large coin bag", "coins": 1000, "price": 6.99,'
        ' "currency": "USD", "store_product_id": "com.storygate.coins.1000"},'
        ' {"package_id": "pack_5000", "name": "Value coin chest", "coins": 5000, "price": 19.99,'
        ' "currency": "USD", "store_product_id": "com.storygate.coins.5000"}]'
    )
    # {platform: {ad_type: placement}}. duration = minimum watch time in seconds.
    ad_placements: str = (
        '{"android": {"rewarded": {"ad_unit_id": "ca-app-pub-xxx/xxx", "provider": "admob",'
        ' "duration": 30, "reward_type": "unlock"},'
        ' "interstitial": {"ad_unit_id": "ca-app-pub-yyy/yyy", "provider": "admob",'
        ' "duration": 15, "reward_type": "none"}},'
        ' "ios": {"rewarded": {"ad_unit_id": "ca-app-pub-zzz/zzz", "provider": "admob",'
        ' "duration": 30, "reward_type": "unlock"},'
        ' "interstitial": {"ad_unit_id": "ca-app-pub-www/www", "provider": "admob",'
        ' "duration": 15, "reward_type": "none"}},'
        ' "windows": {"rewarded": {"ad_unit_id": "windows-ad-001", "provider": "custom",'
        ' "duration": 5, "reward_type": "unlock"}}}'
    )

    # ===========================================
    # AD SESSIONS
    # ===========================================
    ad_session_backend: str = "memory"  # memory, redis
    ad_session_max_age_seconds: int = 3600
    ad_session_sweep_interval_seconds: int = 600

    # ===========================================
    # PROVIDERS (ad SDK / store receipt verification)
    # ===========================================
    ad_provider: str = "passthrough"
    store_provider: str = "sandbox"
    store_platforms: str = "ios,android,windows"
    provider_timeout_seconds: float = 10.0

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # PURCHASE LEDGER
    # ===========================================
    # 0 = never compact (permanent replay protection)
    purchase_retention_days: int = 30
    # Unsettled records younger than this are left to the in-flight request
    reconcile_grace_seconds: int = 300

    # ===========================================
    # ADMIN API
    # ===========================================
    admin_api_key: str | None = None

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("ad_session_backend", "ad_provider", "store_provider")
    @classmethod
    def normalize_backend(cls, v: str) -> str:
        return v.lower().strip()

    @field_validator("default_starting_coins", "purchase_retention_days")
    @classmethod
    def non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @property
    def store_platforms_set(self) -> set[str]:
        """Platforms accepted by purchase verification."""
        return {p.strip().lower() for p in self.store_platforms.split(",") if p.strip()}

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
