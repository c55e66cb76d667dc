"""Configuration service for the storefront.
Loads configuration from environment variables and a secrets file.
"""

import logging
import os
from decimal import Decimal
from pathlib import Path
from typing import Any, cast

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

MAX_DISCOUNT_CAP = Decimal("99.99")
ENV_DIR = Path(__file__).resolve().parent.parent.parent


def load_env_file(env: str | None = None) -> Path | None:
    """Load `.env.<env>` from libs/common, falling back to `.env`. Returns the file used, if any."""
    env = env or os.getenv("APP_ENV", "local")
    for candidate in (ENV_DIR / f".env.{env}", ENV_DIR / ".env"):
        if candidate.exists():
            _ = load_dotenv(candidate)
            return candidate
    return None


def _as_bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("true", "1", "t", "yes")


class StoreSection(BaseModel):
    checkout_enabled: bool = True
    ascension_enabled: bool = False
    ascension_cost: Decimal = Decimal("1.00")
    ascension_description: str = "Convert an in-game item into a blockchain token"
    purchase_description: str = "Game store purchase"
    hide_out_of_stock: bool = False
    currency: str = "USD"


class DiscountSection(BaseModel):
    enabled: bool = False
    token_address: str = ""
    token_decimals: int = 0
    rate_per_token: Decimal = Decimal("0")
    cap: Decimal = Decimal("0")

    @field_validator("cap")
    @classmethod
    def clamp_cap(cls, value: Decimal) -> Decimal:
        # The multiplier 1 - cap/100 must stay in (0, 1]
        return min(max(value, Decimal("0")), MAX_DISCOUNT_CAP)


class StripeSection(BaseModel):
    api_key: str = ""
    enabled: bool = False


class ChainSection(BaseModel):
    enabled: bool = False
    rpc_url: str = ""
    network: str = "mainnet"
    payment_processor_address: str = ""
    service_id: int = 0
    gas_limit: int = 3_000_000
    exchange_rate_url: str = "https://api.coingecko.com/api/v3/simple/price?ids=ethereum&vs_currencies=usd"
    exchange_rate_path: str = "ethereum.usd"


class GameSection(BaseModel):
    login_url: str = ""
    profile_url: str = ""
    inventory_url: str = ""
    remove_item_url: str = ""
    admin_username: str = ""
    admin_password: str = ""


class EnjinSection(BaseModel):
    platform_url: str = ""
    app_id: int = 0
    admin_email: str = ""
    admin_password: str = ""
    already_invited_error: str = "The user has already been invited to this app."
    documents: dict[str, str] = {}


class HttpSection(BaseModel):
    timeout_seconds: float = 20.0
    credential_ttl_seconds: int = 3000


class DatabaseSection(BaseModel):
    url: str = "sqlite+aiosqlite:///./storefront.db"
    echo: bool = False


class ConfigService:
    """Service for loading and accessing application configuration.
    Combines environment variables and secrets from a YAML file.
    """

    store: StoreSection
    discount: DiscountSection
    stripe: StripeSection
    chain: ChainSection
    game: GameSection
    enjin: EnjinSection
    http: HttpSection
    database: DatabaseSection

    def __init__(self) -> None:
        self._config: dict[str, Any] = {}
        self._secrets: dict[str, Any] = {}

        # Determine environment
        self._env = os.getenv("APP_ENV", "local")

        # Load configuration
        self._load_env_file()
        self._load_env_vars()
        self._load_secrets()

        self.store = StoreSection(
            checkout_enabled=_as_bool(self.get("store.checkout_enabled"), True),
            ascension_enabled=_as_bool(self.get("store.ascension_enabled"), False),
            ascension_cost=Decimal(str(self.get("store.ascension_cost", "1.00"))),
            ascension_description=str(self.get("store.ascension_description") or StoreSection().ascension_description),
            purchase_description=str(self.get("store.purchase_description") or StoreSection().purchase_description),
            hide_out_of_stock=_as_bool(self.get("store.hide_out_of_stock"), False),
        )
        self.discount = DiscountSection(
            enabled=_as_bool(self.get("discount.enabled"), False),
            token_address=str(self.get("discount.token_address") or ""),
            token_decimals=int(self.get("discount.token_decimals", 0)),
            rate_per_token=Decimal(str(self.get("discount.rate_per_token", "0"))),
            cap=Decimal(str(self.get("discount.cap", "0"))),
        )
        self.stripe = StripeSection(
            api_key=str(self.get("stripe.api_key") or ""),
            enabled=_as_bool(self.get("stripe.enabled"), False),
        )
        self.chain = ChainSection(
            enabled=_as_bool(self.get("chain.enabled"), False),
            rpc_url=str(self.get("chain.rpc_url") or ""),
            network=str(self.get("chain.network") or "mainnet"),
            payment_processor_address=str(self.get("chain.payment_processor_address") or ""),
            service_id=int(self.get("chain.service_id", 0)),
            gas_limit=int(self.get("chain.gas_limit", 3_000_000)),
            exchange_rate_url=str(self.get("chain.exchange_rate_url") or ChainSection().exchange_rate_url),
            exchange_rate_path=str(self.get("chain.exchange_rate_path") or "ethereum.usd"),
        )
        self.game = GameSection(
            login_url=str(self.get("game.login_url") or ""),
            profile_url=str(self.get("game.profile_url") or ""),
            inventory_url=str(self.get("game.inventory_url") or ""),
            remove_item_url=str(self.get("game.remove_item_url") or ""),
            admin_username=str(self.get("game.admin_username") or ""),
            admin_password=str(self.get("game.admin_password") or ""),
        )
        self.enjin = EnjinSection(
            platform_url=str(self.get("enjin.platform_url") or ""),
            app_id=int(self.get("enjin.app_id", 0)),
            admin_email=str(self.get("enjin.admin_email") or ""),
            admin_password=str(self.get("enjin.admin_password") or ""),
            already_invited_error=str(self.get("enjin.already_invited_error") or EnjinSection().already_invited_error),
            documents=dict(self.get("enjin.documents") or {}),
        )
        self.http = HttpSection(
            timeout_seconds=float(self.get("http.timeout_seconds", 20.0)),
            credential_ttl_seconds=int(self.get("http.credential_ttl_seconds", 3000)),
        )
        self.database = DatabaseSection(
            url=self.get_database_url(),
            echo=_as_bool(self.get("database.echo"), False),
        )

    def _load_env_file(self) -> None:
        loaded = load_env_file(self._env)
        if loaded is None:
            logger.warning("No environment file found, using defaults", extra={"environment": self._env})
        else:
            logger.info("Loaded environment file", extra={"path": str(loaded)})

    def _load_env_vars(self) -> None:
        """Load configuration from environment variables"""
        env_keys = {
            "store.checkout_enabled": "CHECKOUT_ENABLED",
            "store.ascension_enabled": "ASCENSION_ENABLED",
            "store.ascension_cost": "ASCENSION_COST",
            "store.ascension_description": "ASCENSION_DESCRIPTION",
            "store.purchase_description": "PURCHASE_DESCRIPTION",
            "store.hide_out_of_stock": "HIDE_OUT_OF_STOCK",
            "discount.enabled": "DISCOUNT_ENABLED",
            "discount.token_address": "DISCOUNT_TOKEN_ADDRESS",
            "discount.token_decimals": "DISCOUNT_TOKEN_DECIMALS",
            "discount.rate_per_token": "DISCOUNT_RATE_PER_TOKEN",
            "discount.cap": "DISCOUNT_CAP",
            "stripe.enabled": "STRIPE_ENABLED",
            "chain.enabled": "CRYPTO_ENABLED",
            "chain.rpc_url": "CHAIN_RPC_URL",
            "chain.network": "NETWORK_SUFFIX",
            "chain.payment_processor_address": "PAYMENT_PROCESSOR_ADDRESS",
            "chain.service_id": "PAYMENT_PROCESSOR_SERVICE_ID",
            "chain.gas_limit": "CHAIN_GAS_LIMIT",
            "chain.exchange_rate_url": "EXCHANGE_RATE_URL",
            "chain.exchange_rate_path": "EXCHANGE_RATE_PATH",
            "game.login_url": "GAME_LOGIN_URI",
            "game.profile_url": "GAME_PROFILE_URI",
            "game.inventory_url": "GAME_INVENTORY_URI",
            "game.remove_item_url": "GAME_REMOVE_ITEM_URI",
            "enjin.platform_url": "ENJIN_PLATFORM_URL",
            "enjin.app_id": "GAME_APP_ID",
            "http.timeout_seconds": "HTTP_TIMEOUT_SECONDS",
            "http.credential_ttl_seconds": "CREDENTIAL_TTL_SECONDS",
        }
        self._config = {
            "app_env": self._env,
            "debug": _as_bool(os.getenv("DEBUG"), False),
            "project_name": os.getenv("PROJECT_NAME", "Game Storefront"),
            "cors_origins": os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
        }
        # Store settings only land in _config when explicitly set, so secrets can fill the rest
        for key, env_name in env_keys.items():
            value = os.getenv(env_name)
            if value is not None and value != "":
                self._config[key] = value

    def _load_secrets(self) -> None:
        """Read `secrets.<env>.yaml`, or `secrets.yaml`, from libs/common into nested sections."""
        candidates = [ENV_DIR / f"secrets.{self._env}.yaml", ENV_DIR / "secrets.yaml"]
        secrets_file = next((path for path in candidates if path.exists()), None)
        if secrets_file is None:
            logger.warning("No secrets file found, using defaults")
            return
        try:
            with open(secrets_file) as f:
                self._secrets = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError):
            logger.exception("Unreadable secrets file, ignoring it", extra={"path": str(secrets_file)})
            self._secrets = {}

    def get(self, key: str, default: Any = None) -> Any:
        """Environment overrides first, then the secrets file (dotted keys walk its sections), then `default`."""
        if key in self._config:
            return self._config[key]

        value: Any = self._secrets
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return default
            value = cast("Any", value[part])
        return value

    def get_database_url(self) -> str:
        """Get the database URL.
        Priority:
        1. DATABASE_URL environment variable
        2. Full URL from local secrets
        3. Local sqlite file
        """
        db_url = os.getenv("DATABASE_URL")
        if db_url:
            return db_url

        secrets_url = self.get("database.url")
        if secrets_url:
            return str(secrets_url)

        return DatabaseSection().url

    def get_environment(self) -> str:
        return self._env


# Create a singleton instance
config_service = ConfigService()


class Settings(BaseSettings):
    """Application settings that loads from environment variables and secrets file"""

    PROJECT_NAME: str = config_service.get("project_name", "Game Storefront")

    # CORS settings
    CORS_ORIGINS: str = ",".join(config_service.get("cors_origins", ["http://localhost:3000"]))

    DATABASE_URL: str = config_service.database.url

    # Application settings
    DEBUG: bool = config_service.get("debug", False)
    LOG_LEVEL: str = config_service.get("log_level", "info")

    @property
    def BACKEND_CORS_ORIGINS(self) -> list[str]:
        """Returns the CORS origins as a list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    class Config:
        case_sensitive = True
        extra = "ignore"


# Create a singleton instance of Settings
settings = Settings()
