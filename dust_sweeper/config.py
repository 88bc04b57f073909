from pathlib import Path

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Contracts(BaseModel):
    # chain_id -> SplitRouter deployment
    split_router: dict[int, str] = {}

    # chain_id -> asset every dust token is swapped into
    target_token: dict[int, str] = {
        8453: "0x0578d8A44db98B23BF096A382e016e29a5Ce0ffe",  # HIGHER (Base)
    }


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="DUST_", extra="allow")

    # Database (swap attempt history)
    database_url: str = "sqlite+pysqlite:///dust_sweeper.db"

    # EVM provider; retry policy belongs to the transport
    rpc_url: str = "https://1rpc.io/base"
    rpc_retry_count: int = 3
    rpc_retry_delay_sec: float = 2.0
    rpc_timeout_sec: float = 10.0
    chain_id: int = 8453

    # Accepted networks: exactly one production and one test chain
    mainnet_chain_id: int = 8453  # Base
    testnet_chain_id: int = 84532  # Base Sepolia

    # Account
    private_key: str | None = None
    account_address: str | None = None

    # Router
    router_address: str | None = None  # overrides contracts.split_router for chain_id
    contracts: Contracts = Contracts()

    # Execution
    dry_run: bool = True
    slippage_bps: int = 1000  # 10%
    guard_divisor: int = 10_000  # 0.01% of balance held back
    guard_min_wei: int = 100_000
    approval_buffer_bps: int = 10  # 0.1% over the required spend
    approval_receipt_timeout_sec: int = 120
    min_receive_floor_pct: int = 70
    min_receive_ceiling_pct: int = 90
    gas_limit_buffer_bps: int = 2000
    max_priority_fee_gwei: float | None = None
    max_fee_gwei: float | None = None

    # Token discovery
    token_source_url: str | None = None
    dust_threshold_usd: float = 3.0
    tokens_config: str = "config/tokens.yaml"

    # Logging
    log_level: str = "INFO"

    @field_validator(
        "private_key",
        "account_address",
        "router_address",
        "token_source_url",
        "max_priority_fee_gwei",
        "max_fee_gwei",
        mode="before",
    )
    @classmethod
    def _empty_str_to_none(cls, v):
        if v == "":
            return None
        return v

    @field_validator("slippage_bps")
    @classmethod
    def _slippage_in_range(cls, v: int) -> int:
        # minReceive must stay strictly between zero and the quote
        if not 0 < v < 10_000:
            raise ValueError("slippage_bps must be between 1 and 9999")
        return v

    def accepted_chain_ids(self) -> set[int]:
        return {self.mainnet_chain_id, self.testnet_chain_id}

    def router_for(self, chain_id: int | None = None) -> str | None:
        if self.router_address:
            return self.router_address
        return self.contracts.split_router.get(chain_id or self.chain_id)

    def target_token_for(self, chain_id: int | None = None) -> str | None:
        return self.contracts.target_token.get(chain_id or self.chain_id)

    def excluded_tokens(self) -> set[str]:
        import yaml

        path = Path(self.tokens_config)
        if not path.exists():
            return set()
        data = yaml.safe_load(path.read_text()) or {}
        out: set[str] = set()
        for item in data.get("tokens", []):
            addr = item.get("address") if isinstance(item, dict) else item
            if addr:
                # EVM addresses are case-insensitive
                out.add(str(addr).lower())
        return out
