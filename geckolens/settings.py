from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GECKOLENS_", env_file=".env", extra="ignore")

    # GeckoTerminal
    base_url: str = "https://api.geckoterminal.com/api/v2"
    api_version: str = "20230302"
    api_key: str | None = None  # sent as X-API-KEY when set
    network: str = "cfx"
    dex: str = "swappi"
    timeout_seconds: float = 20.0

    # DefiLlama (TVL history for the analyzer)
    defillama_base_url: str = "https://api.llama.fi"

    # Logging (only applied by the CLI)
    log_level: str = "INFO"


settings = Settings()
