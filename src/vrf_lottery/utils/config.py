"""
Configuration Management
"""

import json
import os
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Union

from web3 import Web3

from vrf_lottery.lottery.models import LotteryConfig, RandomnessParams
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = Path("config") / "lottery.conf"

# Environment prefix -> config section
ENV_SECTIONS = {
    "LOTTERY_": "lottery",
    "VRF_": "vrf",
    "ESCROW_": "escrow",
    "SERVER_": "server",
    "APP_": "app",
}


def load_config(config_file: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Load configuration from a JSON file and environment variables"""
    config: Dict[str, Any] = {}

    config_path = Path(config_file) if config_file else Path(os.getenv("APP_CONFIG_FILE", DEFAULT_CONFIG_FILE))
    if config_path.exists():
        with open(config_path, 'r', encoding='utf-8') as f:
            config.update(json.load(f))
        logger.info(f"Loaded configuration from {config_path}")
    else:
        logger.warning(f"Config file {config_path} not found. Will only use environment variables.")

    config = _apply_env_overrides(config)

    logger.debug(f"Configuration after applying environment overrides: {json.dumps(config, indent=2)}")

    return config


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration"""
    for key, value in os.environ.items():
        for prefix, section in ENV_SECTIONS.items():
            if key.startswith(prefix):
                config.setdefault(section, {})[key[len(prefix):].lower()] = value
                break

    return config


def get_config_value(config: Dict[str, Any], key_path: str, default=None):
    """Get configuration value by dot-separated key path"""
    keys = key_path.split('.')
    value = config

    try:
        for key in keys:
            value = value[key]
        return value
    except (KeyError, TypeError):
        return default


def get_config_flag(config: Dict[str, Any], key_path: str, default: bool = False) -> bool:
    """Boolean setting that may arrive as a string from the environment"""
    value = get_config_value(config, key_path, default)
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def build_lottery_config(config: Dict[str, Any]) -> LotteryConfig:
    """Freeze the ``lottery`` and ``vrf`` sections into a LotteryConfig.

    The entrance fee may be given in wei (``entrance_fee_wei``) or in ether
    (``entrance_fee_eth``, default 0.01). Values coming from the environment
    are strings, so everything is coerced explicitly.
    """
    lottery_cfg = config.get("lottery", {})
    vrf_cfg = config.get("vrf", {})

    if lottery_cfg.get("entrance_fee_wei") is not None:
        entrance_fee = int(lottery_cfg["entrance_fee_wei"])
    else:
        entrance_fee = int(Web3.to_wei(Decimal(str(lottery_cfg.get("entrance_fee_eth", "0.01"))), "ether"))

    randomness = RandomnessParams(
        key_hash=str(vrf_cfg.get("key_hash", "0x" + "00" * 32)),
        subscription_id=int(vrf_cfg.get("subscription_id", 0)),
        request_confirmations=int(vrf_cfg.get("request_confirmations", 3)),
        callback_gas_limit=int(vrf_cfg.get("callback_gas_limit", 500000)),
        num_words=int(vrf_cfg.get("num_words", 1)),
    )

    return LotteryConfig(
        entrance_fee=entrance_fee,
        interval=int(lottery_cfg.get("interval_seconds", 30)),
        draw_timeout=int(lottery_cfg.get("draw_timeout_seconds", 600)),
        randomness=randomness,
    )
