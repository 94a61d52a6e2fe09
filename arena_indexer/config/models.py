"""Configuration models for the chain node and indexer settings"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_NODE_URL = "https://fullnode.testnet.aptoslabs.com/v1"
DEFAULT_CONTRACT_ADDRESS = "0xe48c34be75bfd112018e4f35154d4d2756962b20d26f73806833167077c69267"


class NodeConfig(BaseSettings):
    """Connection settings for the full node the indexer reads from"""

    node_url: str
    contract_address: str
    module_name: str = "multiplayer_game"
    page_size: int = 25
    request_timeout_seconds: float = 10.0
    max_retries: int = 3

    model_config = SettingsConfigDict(frozen=True)

    @property
    def transactions_url(self) -> str:
        """REST endpoint listing the contract account's transactions"""
        return f"{self.node_url.rstrip('/')}/accounts/{self.contract_address}/transactions"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    database_url: str = Field(alias="DATABASE_URL")
    database_min_pool_size: int = Field(default=2, alias="DATABASE_MIN_POOL_SIZE")
    database_max_pool_size: int = Field(default=10, alias="DATABASE_MAX_POOL_SIZE")

    # Redis (optional read-model cache)
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")

    # Chain
    aptos_node_url: str = Field(default=DEFAULT_NODE_URL, alias="APTOS_NODE_URL")
    contract_address: str = Field(default=DEFAULT_CONTRACT_ADDRESS, alias="CONTRACT_ADDRESS")
    module_name: str = Field(default="multiplayer_game", alias="MODULE_NAME")
    chain_request_timeout_seconds: float = Field(
        default=10.0, gt=0, alias="CHAIN_REQUEST_TIMEOUT_SECONDS"
    )

    # Indexer
    indexer_interval_seconds: float = Field(default=10.0, gt=0, alias="INDEXER_INTERVAL_SECONDS")
    indexer_page_size: int = Field(default=25, ge=1, le=100, alias="INDEXER_PAGE_SIZE")

    # API Configuration
    api_keys: str = Field(default="", alias="API_KEYS")
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")
    websocket_max_connections: int = Field(default=100, ge=1, alias="WEBSOCKET_MAX_CONNECTIONS")

    # Monitoring
    prometheus_port: int = Field(default=9090, alias="PROMETHEUS_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    def get_api_keys_list(self) -> List[str]:
        """Parse comma-separated API keys into list"""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    def get_node_config(self) -> NodeConfig:
        """Get full node configuration"""
        return NodeConfig(
            node_url=self.aptos_node_url,
            contract_address=self.contract_address,
            module_name=self.module_name,
            page_size=self.indexer_page_size,
            request_timeout_seconds=self.chain_request_timeout_seconds,
        )
