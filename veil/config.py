"""
Veil Configuration
"""

from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, field, asdict
from typing import List, Mapping, Optional

from veil.constants import (
    ALLOWED_BIT_LENGTHS,
    BUNDLE_FRESHNESS_WINDOW_MS,
    DECOY_CACHE_MAX_ENTRIES,
    DECOY_FETCH_LIMIT,
    DECOY_TIMEOUT_SEC,
    DEFAULT_RANGE_BITS,
    DEFAULT_RING_SIZE,
    MAX_CLOCK_SKEW_MS,
    MAX_RING_SIZE,
    MIN_RING_SIZE,
)

logger = logging.getLogger(__name__)

ENV_PREFIX = "VEIL_"


@dataclass
class TransferConfig:
    """Bundle creation and verification policy."""
    default_ring_size: int = DEFAULT_RING_SIZE
    default_range_bits: int = DEFAULT_RANGE_BITS
    require_compliance: bool = False
    user_id: Optional[str] = None
    freshness_window_ms: int = BUNDLE_FRESHNESS_WINDOW_MS
    max_clock_skew_ms: int = MAX_CLOCK_SKEW_MS
    decoy_timeout_sec: float = DECOY_TIMEOUT_SEC
    decoy_fetch_limit: int = DECOY_FETCH_LIMIT
    decoy_cache_size: int = DECOY_CACHE_MAX_ENTRIES


@dataclass
class LedgerConfig:
    """Ledger JSON-RPC endpoint (decoy candidates)."""
    rpc_url: Optional[str] = None
    timeout_sec: float = 10.0


@dataclass
class ComplianceConfig:
    """Compliance attestation service."""
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout_sec: float = 10.0


@dataclass
class AuxiliaryConfig:
    """MPC cluster for the auxiliary encrypted-amount channel."""
    cluster_public_key: Optional[str] = None  # hex X25519 key


@dataclass
class StoreConfig:
    """Spent-set storage."""
    backend: str = "memory"  # "memory" | "sqlite"
    db_path: str = "./data/veil_spent.db"


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_size_mb: int = 100
    backup_count: int = 5


@dataclass
class VeilConfig:
    """Complete service configuration."""
    transfer: TransferConfig = field(default_factory=TransferConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    compliance: ComplianceConfig = field(default_factory=ComplianceConfig)
    auxiliary: AuxiliaryConfig = field(default_factory=AuxiliaryConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    log: LogConfig = field(default_factory=LogConfig)

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        t = self.transfer
        if not MIN_RING_SIZE <= t.default_ring_size <= MAX_RING_SIZE:
            errors.append(
                f"default_ring_size must be in [{MIN_RING_SIZE}, {MAX_RING_SIZE}]: {t.default_ring_size}"
            )
        if t.default_range_bits not in ALLOWED_BIT_LENGTHS:
            errors.append(f"default_range_bits must be one of {list(ALLOWED_BIT_LENGTHS)}")
        if t.freshness_window_ms <= 0:
            errors.append("freshness_window_ms must be positive")
        if t.max_clock_skew_ms < 0:
            errors.append("max_clock_skew_ms cannot be negative")
        if t.decoy_timeout_sec <= 0:
            errors.append("decoy_timeout_sec must be positive")
        if t.decoy_fetch_limit < 1:
            errors.append("decoy_fetch_limit must be at least 1")
        if t.require_compliance and not (self.compliance.base_url and t.user_id):
            errors.append("require_compliance needs compliance.base_url and transfer.user_id")

        if self.store.backend not in ("memory", "sqlite"):
            errors.append(f"Unknown store backend: {self.store.backend}")
        if self.store.backend == "sqlite" and not self.store.db_path:
            errors.append("db_path cannot be empty for the sqlite backend")

        if self.auxiliary.cluster_public_key is not None:
            try:
                if len(bytes.fromhex(self.auxiliary.cluster_public_key)) != 32:
                    errors.append("cluster_public_key must be 32 bytes")
            except ValueError:
                errors.append("cluster_public_key must be hex")

        return errors

    def to_dict(self) -> dict:
        """Export configuration as dictionary."""
        return {
            "transfer": asdict(self.transfer),
            "ledger": asdict(self.ledger),
            "compliance": asdict(self.compliance),
            "auxiliary": asdict(self.auxiliary),
            "store": asdict(self.store),
            "log": asdict(self.log),
        }

    def save(self, path: str) -> None:
        """Save configuration to file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.info(f"Configuration saved to {path}")

    @classmethod
    def from_dict(cls, data: dict) -> "VeilConfig":
        config = cls()

        if "transfer" in data:
            config.transfer = TransferConfig(**data["transfer"])

        if "ledger" in data:
            config.ledger = LedgerConfig(**data["ledger"])

        if "compliance" in data:
            config.compliance = ComplianceConfig(**data["compliance"])

        if "auxiliary" in data:
            config.auxiliary = AuxiliaryConfig(**data["auxiliary"])

        if "store" in data:
            config.store = StoreConfig(**data["store"])

        if "log" in data:
            config.log = LogConfig(**data["log"])

        return config

    @classmethod
    def load(cls, path: str) -> "VeilConfig":
        """Load configuration from file."""
        with open(path, 'r') as f:
            data = json.load(f)

        config = cls.from_dict(data)
        logger.info(f"Configuration loaded from {path}")
        return config

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "VeilConfig":
        """
        Build configuration from VEIL_* environment variables.

        VEIL_RING_SIZE, VEIL_RANGE_BITS, VEIL_REQUIRE_COMPLIANCE, VEIL_USER_ID,
        VEIL_LEDGER_RPC_URL, VEIL_COMPLIANCE_URL, VEIL_COMPLIANCE_API_KEY,
        VEIL_MPC_CLUSTER_KEY, VEIL_STORE_BACKEND, VEIL_STORE_PATH, VEIL_LOG_LEVEL,
        VEIL_LOG_FILE
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value if value else None

        config = cls()
        if get("RING_SIZE"):
            config.transfer.default_ring_size = int(get("RING_SIZE"))
        if get("RANGE_BITS"):
            config.transfer.default_range_bits = int(get("RANGE_BITS"))
        if get("REQUIRE_COMPLIANCE"):
            config.transfer.require_compliance = get("REQUIRE_COMPLIANCE").lower() in ("1", "true", "yes")
        config.transfer.user_id = get("USER_ID") or config.transfer.user_id

        config.ledger.rpc_url = get("LEDGER_RPC_URL")
        config.compliance.base_url = get("COMPLIANCE_URL")
        config.compliance.api_key = get("COMPLIANCE_API_KEY")
        config.auxiliary.cluster_public_key = get("MPC_CLUSTER_KEY")

        if get("STORE_BACKEND"):
            config.store.backend = get("STORE_BACKEND")
        if get("STORE_PATH"):
            config.store.db_path = get("STORE_PATH")

        if get("LOG_LEVEL"):
            config.log.level = get("LOG_LEVEL")
        config.log.file = get("LOG_FILE")

        return config


def setup_logging(config: LogConfig) -> None:
    """Configure logging based on config."""
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler()]

    if config.file:
        from logging.handlers import RotatingFileHandler
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=config.max_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format=config.format,
        handlers=handlers,
    )
