from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PaymentAccount(BaseModel):
    """Display account for a manual payment method (e-wallet or bank)."""

    kind: str  # "ewallet" | "bank"
    label: str
    number: str = ""
    name: str = ""
    enabled: bool = False


DEFAULT_PAYMENT_ACCOUNTS: dict[str, PaymentAccount] = {
    "DANA": PaymentAccount(kind="ewallet", label="DANA"),
    "GOPAY": PaymentAccount(kind="ewallet", label="GoPay"),
    "OVO": PaymentAccount(kind="ewallet", label="OVO"),
    "SHOPEEPAY": PaymentAccount(kind="ewallet", label="ShopeePay"),
    "BCA": PaymentAccount(kind="bank", label="BCA"),
    "BNI": PaymentAccount(kind="bank", label="BNI"),
    "BRI": PaymentAccount(kind="bank", label="BRI"),
    "MANDIRI": PaymentAccount(kind="bank", label="Mandiri"),
}


class Settings(BaseSettings):
    # Read env from container + optionally from files
    model_config = SettingsConfigDict(
        env_file=(".env", ".env.docker"),
        extra="ignore",
        case_sensitive=False,
    )

    # App
    ENV: str = Field(default="dev", validation_alias=AliasChoices("ENV", "ENVIRONMENT", "env"))
    APP_NAME: str = Field(default="storebot", validation_alias=AliasChoices("APP_NAME", "app_name"))
    LOG_LEVEL: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))
    SHOP_NAME: str = Field(default="Premium Shop", validation_alias=AliasChoices("SHOP_NAME", "shop_name"))

    # Infrastructure
    REDIS_URL: str = Field(default="redis://localhost:6379/0", validation_alias=AliasChoices("REDIS_URL", "redis_url"))
    USE_REDIS: bool = Field(default=False, validation_alias=AliasChoices("USE_REDIS", "use_redis"))
    OUTBOUND_VIA_QUEUE: bool = Field(default=False, validation_alias=AliasChoices("OUTBOUND_VIA_QUEUE", "outbound_via_queue"))

    # Storage paths
    PRODUCTS_DIR: str = Field(default="./products_data", validation_alias=AliasChoices("PRODUCTS_DIR", "products_dir"))
    DATA_DIR: str = Field(default="./data", validation_alias=AliasChoices("DATA_DIR", "data_dir"))
    LOGS_DIR: str = Field(default="./logs", validation_alias=AliasChoices("LOGS_DIR", "logs_dir"))

    # WhatsApp Meta
    WHATSAPP_VERIFY_TOKEN: str = Field(default="", validation_alias=AliasChoices("WHATSAPP_VERIFY_TOKEN", "whatsapp_verify_token"))
    WHATSAPP_ACCESS_TOKEN: str = Field(default="", validation_alias=AliasChoices("WHATSAPP_ACCESS_TOKEN", "whatsapp_access_token"))
    WHATSAPP_PHONE_NUMBER_ID: str = Field(default="", validation_alias=AliasChoices("WHATSAPP_PHONE_NUMBER_ID", "whatsapp_phone_number_id"))
    ADMIN_NUMBERS: list[str] = Field(default_factory=list, validation_alias=AliasChoices("ADMIN_NUMBERS", "admin_numbers"))

    # Session / cart
    SESSION_TIMEOUT_SECONDS: int = Field(default=30 * 60, validation_alias=AliasChoices("SESSION_TIMEOUT_SECONDS", "session_timeout_seconds"))
    SESSION_CLEANUP_INTERVAL: int = Field(default=10 * 60, validation_alias=AliasChoices("SESSION_CLEANUP_INTERVAL", "session_cleanup_interval"))
    MAX_CART_ITEMS: int = Field(default=50, validation_alias=AliasChoices("MAX_CART_ITEMS", "max_cart_items"))

    # Catalog / inventory
    USD_TO_IDR_RATE: int = Field(default=15800, validation_alias=AliasChoices("USD_TO_IDR_RATE", "usd_to_idr_rate"))
    LOW_STOCK_THRESHOLD: int = Field(default=5, validation_alias=AliasChoices("LOW_STOCK_THRESHOLD", "low_stock_threshold"))
    FUZZY_MATCH_THRESHOLD: int = Field(default=70, validation_alias=AliasChoices("FUZZY_MATCH_THRESHOLD", "fuzzy_match_threshold"))

    # Payments
    QRIS_ENABLED: bool = Field(default=True, validation_alias=AliasChoices("QRIS_ENABLED", "qris_enabled"))
    PAYMENT_ACCOUNTS: dict[str, PaymentAccount] = Field(
        default_factory=lambda: {k: v.model_copy() for k, v in DEFAULT_PAYMENT_ACCOUNTS.items()},
        validation_alias=AliasChoices("PAYMENT_ACCOUNTS", "payment_accounts"),
    )

    # Xendit
    XENDIT_BASE_URL: str = Field(default="https://api.xendit.co", validation_alias=AliasChoices("XENDIT_BASE_URL", "xendit_base_url"))
    XENDIT_SECRET_KEY: str = Field(default="", validation_alias=AliasChoices("XENDIT_SECRET_KEY", "xendit_secret_key"))
    XENDIT_CALLBACK_TOKEN: str = Field(default="", validation_alias=AliasChoices("XENDIT_CALLBACK_TOKEN", "xendit_callback_token"))
    PAYMENT_GATEWAY_TIMEOUT: float = Field(default=15.0, validation_alias=AliasChoices("PAYMENT_GATEWAY_TIMEOUT", "payment_gateway_timeout"))


settings = Settings()
