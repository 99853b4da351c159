from pydantic import Field
from pydantic_settings import BaseSettings
from typing import Optional, List


class Settings(BaseSettings):
    """Application configuration settings."""

    # Application Configuration
    app_name: str = Field(default="Stories.fun API", env="APP_NAME")
    app_version: str = Field(default="1.0.0", env="APP_VERSION")
    debug: bool = Field(default=False, env="DEBUG")
    environment: str = Field(default="production", env="ENVIRONMENT")

    # Server Configuration
    host: str = Field(default="0.0.0.0", env="HOST")
    port: int = Field(default=8000, env="PORT")
    workers: int = Field(default=4, env="WORKERS")

    # Database Configuration (Supabase Postgres)
    database_url: str = Field(env="DATABASE_URL")

    # Redis Configuration
    redis_url: str = Field(default="redis://localhost:6379/0", env="REDIS_URL")
    redis_password: Optional[str] = Field(default=None, env="REDIS_PASSWORD")

    # Solana Configuration
    solana_rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com", env="SOLANA_RPC_URL"
    )
    solana_fallback_rpc_urls: str = Field(
        default="https://solana-api.projectserum.com,https://rpc.ankr.com/solana",
        env="SOLANA_FALLBACK_RPC_URLS",
    )  # Comma-separated list
    helius_api_key: Optional[str] = Field(default=None, env="HELIUS_API_KEY")
    rpc_timeout_seconds: float = Field(default=15.0, env="RPC_TIMEOUT_SECONDS")
    treasury_address: str = Field(env="TREASURY_ADDRESS")

    # STORIES token
    stories_token_mint: str = Field(
        default="EvA88escD87zrzG7xo8WAM8jW6gJ5uQfeLL8Fj6DUZ2Q", env="STORIES_TOKEN_MINT"
    )
    stories_decimals: int = Field(default=9, env="STORIES_DECIMALS")
    stories_pair_address: str = Field(
        default="DwAnxaVPCkLCKigNt5kNZwUmJ3rbiVFmvLxgEgFyogAL", env="STORIES_PAIR_ADDRESS"
    )
    stories_swap_url: str = Field(
        default="https://jup.ag/swap/SOL-STORY_W14DdQzkP8F3jzq4wWuo7pWQJNyvzQ7RZ7K7X5Y6q4E",
        env="STORIES_SWAP_URL",
    )

    # Story payment configuration
    story_usd_price: float = Field(default=9.0, env="STORY_USD_PRICE")
    priority_fee_micro_lamports: int = Field(
        default=100_000, env="PRIORITY_FEE_MICRO_LAMPORTS"
    )
    min_sol_balance: float = Field(default=0.01, env="MIN_SOL_BALANCE")
    payment_valid_seconds: int = Field(default=120, env="PAYMENT_VALID_SECONDS")
    price_fetch_retries: int = Field(default=3, env="PRICE_FETCH_RETRIES")
    price_cache_seconds: int = Field(default=60, env="PRICE_CACHE_SECONDS")

    # External APIs
    dexscreener_api_url: str = Field(
        default="https://api.dexscreener.com/latest", env="DEXSCREENER_API_URL"
    )
    jupiter_api_url: str = Field(
        default="https://quote-api.jup.ag/v6", env="JUPITER_API_URL"
    )
    openai_api_key: Optional[str] = Field(default=None, env="OPENAI_API_KEY")
    openai_tts_url: str = Field(
        default="https://api.openai.com/v1/audio/speech", env="OPENAI_TTS_URL"
    )
    tts_model: str = Field(default="tts-1", env="TTS_MODEL")
    tts_voice: str = Field(default="nova", env="TTS_VOICE")
    resend_api_key: Optional[str] = Field(default=None, env="RESEND_API_KEY")
    resend_api_url: str = Field(
        default="https://api.resend.com/emails", env="RESEND_API_URL"
    )
    email_from: str = Field(default="support@noreply.stories.fun", env="EMAIL_FROM")
    otp_ttl_seconds: int = Field(default=600, env="OTP_TTL_SECONDS")
    ipfs_gateway_url: str = Field(
        default="https://ipfs.erebrus.io", env="IPFS_GATEWAY_URL"
    )

    # Authentication & Security
    secret_key: str = Field(env="SECRET_KEY")
    algorithm: str = Field(default="HS256", env="ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=7 * 24 * 60, env="ACCESS_TOKEN_EXPIRE_MINUTES"
    )

    # Monitoring & Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    # Rate Limiting
    rate_limit_per_minute: int = Field(default=60, env="RATE_LIMIT_PER_MINUTE")
    enable_rate_limiting: bool = Field(default=True, env="ENABLE_RATE_LIMITING")

    cors_origins: str = Field(
        default="https://stories.fun,https://www.stories.fun", env="CORS_ORIGINS"
    )  # Comma-separated list

    @property
    def rpc_endpoints(self) -> List[str]:
        """RPC endpoints in the order they should be tried."""
        endpoints = []
        if self.helius_api_key:
            endpoints.append(
                f"https://mainnet.helius-rpc.com/?api-key={self.helius_api_key}"
            )
        endpoints.append(self.solana_rpc_url)
        endpoints.extend(
            url.strip() for url in self.solana_fallback_rpc_urls.split(",") if url.strip()
        )
        return endpoints

    @property
    def allowed_origins(self) -> List[str]:
        """Get allowed CORS origins."""
        if self.debug:
            return ["*"]
        return [
            origin.strip() for origin in self.cors_origins.split(",") if origin.strip()
        ]

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
