"""
TradeTrack — Configuration via environment variables.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """All settings read from env / .env file."""

    # Record store
    store_backend: str = Field(
        default="sql",
        description="Record store backend: 'sql' (SQLAlchemy), 'firestore' or 'memory'",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./tradetrack.db",
        description="Async SQLAlchemy DB URL (sql backend)",
    )

    # Firebase
    firebase_cred_path: str = Field(
        default="", description="Path to Firebase service account key JSON"
    )
    firebase_project_id: str = Field(default="", description="Firestore project id override")

    # Notifications
    admin_addresses: str = Field(
        default="0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
        description="Comma-separated admin wallet addresses notified on every mutation",
    )

    # Chain (optional receipt verification for contract logs)
    chain_rpc_url: str = Field(default="", description="Ethereum JSON-RPC endpoint")
    chain_rpc_timeout: int = Field(default=10, description="Seconds per JSON-RPC call")

    log_level: str = Field(default="INFO")

    @property
    def admin_list(self) -> list[str]:
        """Admin addresses as a list, blanks dropped."""
        return [a.strip() for a in self.admin_addresses.split(",") if a.strip()]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
