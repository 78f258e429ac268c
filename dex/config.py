"""
Configuration loading and validation for the cross-DEX arbitrage bot.
"""

import os
from decimal import Decimal
from typing import Any, Dict, List, Optional

import yaml
from web3 import Web3

from arbites.exceptions import ConfigError

from .registry import MOONBEAM_CHAIN_ID, MOONBEAM_DEXES
from .types import DexInfo, Token

DEFAULT_MAX_GAS_PRICE_GWEI = 100
VALID_DEX_KINDS = ("uniswap-v2",)


class BotConfig:
    """
    Parsed and validated bot configuration.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint
        chain_id: EVM chain id
        update_interval_seconds: Seconds between cycle starts
        min_profit_percentage: Minimum price divergence to report (%)
        max_gas_price: Gas price ceiling in wei
        slippage_tolerance_bps: Swap slippage tolerance in basis points
        dry_run: If True, opportunities are reported but never executed
        max_concurrent_reads: Upper bound on in-flight pool reads
        rpc_timeout_seconds: Timeout for a single RPC call
        receipt_timeout_seconds: Timeout for a transaction to be mined
        confirmations: Blocks to wait for on each transaction
        probe_amount: Opportunity probe size in whole token units
        gas_estimate: Gas units assumed per swap
        private_key_env: Environment variable holding the signer key
        private_key: Signer key, loaded only for live runs
        tokens: Dict of {symbol -> Token}
        dexes: DEX deployments (defaults to the Moonbeam table)
        pools: Static pools as [{address, dex}]
        discover_pools: Register CREATE2-derived pools for all token pairs
        metrics_enabled: Serve Prometheus metrics over HTTP
        metrics_host: Metrics server bind address
        metrics_port: Metrics server port
    """

    def __init__(self, config_dict: Dict[str, Any]):
        """
        Parse and validate config from dictionary.

        Args:
            config_dict: Loaded YAML config

        Raises:
            ConfigError: If required fields missing or invalid
        """
        # RPC and loop settings
        self.rpc_url: str = self._get_required(config_dict, "rpc_url", str)
        if not self.rpc_url.startswith(("http://", "https://")):
            raise ConfigError(f"rpc_url must be an http(s) URL, got '{self.rpc_url}'")
        self.chain_id: int = self._get_int(config_dict, "chain_id", MOONBEAM_CHAIN_ID, minimum=1)
        self.update_interval_seconds: int = self._get_int(
            config_dict, "update_interval_seconds", 30, minimum=1
        )

        # Detection
        self.min_profit_percentage: float = self._get_float(
            config_dict, "min_profit_percentage", 0.5
        )
        self.probe_amount: int = self._get_int(config_dict, "probe_amount", 1000, minimum=1)
        self.gas_estimate: int = self._get_int(config_dict, "gas_estimate", 200_000, minimum=0)

        # Execution
        self.max_gas_price: int = self._parse_max_gas_price(config_dict)
        self.slippage_tolerance_bps: int = self._get_int(
            config_dict, "slippage_tolerance_bps", 50, minimum=0
        )
        if self.slippage_tolerance_bps > 10_000:
            raise ConfigError(
                f"Config field 'slippage_tolerance_bps' must be <= 10000, "
                f"got {self.slippage_tolerance_bps}"
            )
        self.dry_run: bool = config_dict.get("dry_run", True)
        if not isinstance(self.dry_run, bool):
            raise ConfigError("Config field 'dry_run' must be bool")
        self.confirmations: int = self._get_int(config_dict, "confirmations", 1, minimum=1)

        # Network limits
        self.max_concurrent_reads: int = self._get_int(
            config_dict, "max_concurrent_reads", 5, minimum=1
        )
        self.rpc_timeout_seconds: float = self._get_float(config_dict, "rpc_timeout_seconds", 10.0)
        self.receipt_timeout_seconds: float = self._get_float(
            config_dict, "receipt_timeout_seconds", 120.0
        )
        if self.rpc_timeout_seconds <= 0 or self.receipt_timeout_seconds <= 0:
            raise ConfigError("RPC and receipt timeouts must be positive")

        # Signer: only needed when transactions are actually sent
        self.private_key_env: str = config_dict.get("private_key_env", "ARBITES_PRIVATE_KEY")
        self.private_key: Optional[str] = None
        if not self.dry_run:
            self.private_key = os.environ.get(self.private_key_env)
            if not self.private_key:
                raise ConfigError(
                    f"Live trading requires a private key in ${self.private_key_env}"
                )

        # Tokens, DEXes and pools
        self.tokens: Dict[str, Token] = self._parse_tokens(
            config_dict.get("tokens", {}), self.chain_id
        )
        self.dexes: List[DexInfo] = self._parse_dexes(config_dict.get("dexes"), self.chain_id)
        self.pools: List[Dict[str, str]] = self._parse_pools(
            config_dict.get("pools", []), {dex.name for dex in self.dexes}
        )
        self.discover_pools: bool = bool(config_dict.get("discover_pools", True))

        if not self.pools and not (self.discover_pools and len(self.tokens) >= 2):
            raise ConfigError(
                "Either static pools or discover_pools with at least two tokens "
                "must be configured"
            )

        # Metrics server
        metrics_raw = config_dict.get("metrics", {}) or {}
        if not isinstance(metrics_raw, dict):
            raise ConfigError("Config field 'metrics' must be a dict")
        self.metrics_enabled: bool = bool(metrics_raw.get("enabled", False))
        self.metrics_host: str = metrics_raw.get("host", "0.0.0.0")
        self.metrics_port: int = self._get_int(metrics_raw, "port", 8000, minimum=1)

    @staticmethod
    def _get_required(d: Dict, key: str, expected_type: type) -> Any:
        """Get required config field with type validation."""
        if key not in d:
            raise ConfigError(f"Missing required config field: {key}")
        val = d[key]
        if not isinstance(val, expected_type):
            raise ConfigError(
                f"Config field '{key}' must be {expected_type.__name__}, got {type(val).__name__}"
            )
        return val

    @staticmethod
    def _get_int(d: Dict, key: str, default: int, minimum: Optional[int] = None) -> int:
        val = d.get(key, default)
        if isinstance(val, bool) or not isinstance(val, int):
            raise ConfigError(f"Config field '{key}' must be int, got {type(val).__name__}")
        if minimum is not None and val < minimum:
            raise ConfigError(f"Config field '{key}' must be >= {minimum}, got {val}")
        return val

    @staticmethod
    def _get_float(d: Dict, key: str, default: float) -> float:
        val = d.get(key, default)
        if isinstance(val, bool) or not isinstance(val, (int, float)):
            raise ConfigError(f"Config field '{key}' must be a number, got {type(val).__name__}")
        if val < 0:
            raise ConfigError(f"Config field '{key}' must be >= 0, got {val}")
        return float(val)

    @classmethod
    def _parse_max_gas_price(cls, d: Dict[str, Any]) -> int:
        """Gas ceiling in wei, from ``max_gas_price`` (wei) or ``max_gas_price_gwei``."""
        if "max_gas_price" in d:
            return cls._get_int(d, "max_gas_price", 0, minimum=1)
        gwei = cls._get_float(d, "max_gas_price_gwei", DEFAULT_MAX_GAS_PRICE_GWEI)
        if gwei <= 0:
            raise ConfigError("Config field 'max_gas_price_gwei' must be positive")
        return int(Web3.to_wei(Decimal(str(gwei)), "gwei"))

    @staticmethod
    def _parse_tokens(tokens_raw: Dict[str, Any], chain_id: int) -> Dict[str, Token]:
        """Parse and validate tokens config."""
        if not isinstance(tokens_raw, dict):
            raise ConfigError("Config field 'tokens' must be a dict")
        tokens = {}
        for symbol, info in tokens_raw.items():
            if not isinstance(info, dict):
                raise ConfigError(f"Token '{symbol}' config must be a dict")
            if "address" not in info:
                raise ConfigError(f"Token '{symbol}' missing 'address'")
            if "decimals" not in info:
                raise ConfigError(f"Token '{symbol}' missing 'decimals'")
            if not Web3.is_address(info["address"]):
                raise ConfigError(f"Token '{symbol}' has invalid address '{info['address']}'")

            tokens[symbol] = Token(
                address=info["address"],
                symbol=symbol,
                decimals=int(info["decimals"]),
                chain_id=chain_id,
            )
        return tokens

    @staticmethod
    def _parse_dexes(dexes_raw: Optional[List[Any]], chain_id: int) -> List[DexInfo]:
        """Parse and validate DEXes config. Missing means the Moonbeam defaults."""
        if dexes_raw is None:
            return list(MOONBEAM_DEXES.values())
        if not isinstance(dexes_raw, list):
            raise ConfigError("Config field 'dexes' must be a list")

        dexes = []
        for i, dex in enumerate(dexes_raw):
            if not isinstance(dex, dict):
                raise ConfigError(f"DEX config {i} must be a dict")

            name = dex.get("name")
            if not name:
                raise ConfigError(f"DEX config {i} missing 'name'")

            kind = dex.get("kind", "uniswap-v2")
            if kind not in VALID_DEX_KINDS:
                raise ConfigError(
                    f"DEX '{name}' has invalid kind '{kind}' "
                    f"(must be one of {', '.join(VALID_DEX_KINDS)})"
                )

            for field_name in ("router_address", "factory_address"):
                if not Web3.is_address(dex.get(field_name, "")):
                    raise ConfigError(f"DEX '{name}' missing or invalid '{field_name}'")

            dexes.append(
                DexInfo(
                    name=name,
                    kind=kind,
                    router_address=dex["router_address"],
                    factory_address=dex["factory_address"],
                    chain_id=chain_id,
                    fee_bps=int(dex.get("fee_bps", 30)),
                    init_code_hash=dex.get("init_code_hash"),
                )
            )
        return dexes

    @staticmethod
    def _parse_pools(pools_raw: List[Any], dex_names: set) -> List[Dict[str, str]]:
        """Parse and validate static pools config."""
        if not isinstance(pools_raw, list):
            raise ConfigError("Config field 'pools' must be a list")

        pools = []
        for i, pool in enumerate(pools_raw):
            if not isinstance(pool, dict):
                raise ConfigError(f"Pool config {i} must be a dict")
            address = pool.get("address")
            dex = pool.get("dex")
            if not address or not Web3.is_address(address):
                raise ConfigError(f"Pool config {i} missing or invalid 'address'")
            if dex not in dex_names:
                raise ConfigError(f"Pool config {i} references unknown DEX '{dex}'")
            pools.append({"address": address, "dex": dex})
        return pools


def load_config(config_path: str, overrides: Optional[Dict[str, Any]] = None) -> BotConfig:
    """
    Load and validate config from YAML file.

    Args:
        config_path: Path to config YAML file
        overrides: Top-level keys that replace file values (CLI flags)

    Returns:
        Validated BotConfig instance

    Raises:
        ConfigError: If config invalid, unparseable or file not found
    """
    if not os.path.exists(config_path):
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML: {e}") from e

    if not isinstance(config_dict, dict):
        raise ConfigError("Config file must contain a YAML dictionary")

    if overrides:
        config_dict.update({k: v for k, v in overrides.items() if v is not None})

    return BotConfig(config_dict)
