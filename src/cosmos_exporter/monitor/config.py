#!/usr/bin/env python3
"""
Exporter configuration

Loaded once from environment variables at process start (optionally from a .env
file) and passed explicitly to the aggregator and every fetch task. Instances are
frozen; runtime-resolved values (chain id, denom) produce a new instance.
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv

from cosmos_exporter.clients.addresses import BechPrefixes


logger = logging.getLogger(__name__)


TRUE_VALUES = {'1', 'true', 'yes', 'on'}


class ConfigError(ValueError):
    """Invalid combination of configuration values"""


def _bool(env: Mapping[str, str], key: str, default: bool = False) -> bool:
    raw = env.get(key)
    if raw is None or raw.strip() == '':
        return default
    return raw.strip().lower() in TRUE_VALUES


def _list(env: Mapping[str, str], key: str) -> Tuple[str, ...]:
    raw = env.get(key, '')
    return tuple(item.strip() for item in raw.split(',') if item.strip())


@dataclass(frozen=True)
class ExporterConfig:
    """Configuration loaded from environment variables"""

    # Node connection
    lcd_url: str = "http://localhost:1317"
    request_timeout: float = 10.0
    pagination_limit: int = 1000

    # HTTP server
    listen_host: str = "0.0.0.0"
    listen_port: int = 9300

    # Logging
    log_level: str = "INFO"

    # Denom: display denom, its base denom and the base -> display coefficient
    denom: str = ""
    base_denom: str = ""
    denom_coefficient: float = 1.0
    denom_exponent: int = 0

    # Bech32 prefixes
    prefixes: BechPrefixes = field(default_factory=lambda: BechPrefixes.from_global("cosmos"))

    # Feature flags
    single: bool = False
    proposals: bool = False
    params: bool = False
    upgrades: bool = False
    votes: bool = False
    prop_v1: bool = False
    oracle: bool = False
    oracle_network: str = ""
    orchestrator_address: str = ""

    # Targets
    wallets: Tuple[str, ...] = ()
    validators: Tuple[str, ...] = ()

    # Resolved at startup from node info
    chain_id: str = ""

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, env_file: Optional[Path] = None) -> 'ExporterConfig':
        """
        Build configuration from environment variables

        Args:
            env: Mapping to read from (default: os.environ)
            env_file: Optional .env file loaded into os.environ first

        Raises:
            ConfigError: both DENOM_COEFFICIENT and DENOM_EXPONENT are provided
        """
        if env is None:
            if env_file is not None and env_file.exists():
                load_dotenv(env_file)
                logger.info(f"Loaded environment from {env_file}")
            env = os.environ

        prefix = env.get('BECH_PREFIX', 'cosmos')
        defaults = BechPrefixes.from_global(prefix)
        prefixes = BechPrefixes(
            account=env.get('BECH_ACCOUNT_PREFIX') or defaults.account,
            validator=env.get('BECH_VALIDATOR_PREFIX') or defaults.validator,
            consensus=env.get('BECH_CONSENSUS_NODE_PREFIX') or defaults.consensus
        )

        coefficient = float(env.get('DENOM_COEFFICIENT', '1'))
        exponent = int(env.get('DENOM_EXPONENT', '0'))
        if coefficient != 1 and exponent != 0:
            raise ConfigError("DENOM_COEFFICIENT and DENOM_EXPONENT are both provided. Must provide only one")
        if exponent != 0:
            coefficient = float(10 ** exponent)

        return cls(
            lcd_url=env.get('COSMOS_LCD_URL', cls.lcd_url),
            request_timeout=float(env.get('REQUEST_TIMEOUT', cls.request_timeout)),
            pagination_limit=int(env.get('PAGINATION_LIMIT', cls.pagination_limit)),
            listen_host=env.get('LISTEN_HOST', cls.listen_host),
            listen_port=int(env.get('LISTEN_PORT', cls.listen_port)),
            log_level=env.get('LOG_LEVEL', cls.log_level),
            denom=env.get('DENOM', ''),
            base_denom=env.get('BASE_DENOM', ''),
            denom_coefficient=coefficient,
            denom_exponent=exponent,
            prefixes=prefixes,
            single=_bool(env, 'SINGLE'),
            proposals=_bool(env, 'PROPOSALS'),
            params=_bool(env, 'PARAMS'),
            upgrades=_bool(env, 'UPGRADES'),
            votes=_bool(env, 'VOTES'),
            prop_v1=_bool(env, 'PROPV1'),
            oracle=_bool(env, 'ORACLE'),
            oracle_network=env.get('ORACLE_NETWORK', '').strip().lower(),
            orchestrator_address=env.get('ORCHESTRATOR_ADDRESS', '').strip(),
            wallets=_list(env, 'WALLETS'),
            validators=_list(env, 'VALIDATORS')
        )

    @property
    def denom_provided(self) -> bool:
        """True when the operator set the denom and its conversion explicitly"""
        return bool(self.denom) and (self.denom_coefficient != 1 or self.denom_exponent != 0)

    @property
    def const_labels(self) -> Dict[str, str]:
        return {'chain_id': self.chain_id} if self.chain_id else {}

    def with_chain_id(self, chain_id: str) -> 'ExporterConfig':
        return dataclasses.replace(self, chain_id=chain_id)

    def with_denom(self, denom: str, base_denom: str, coefficient: float) -> 'ExporterConfig':
        return dataclasses.replace(self, denom=denom, base_denom=base_denom, denom_coefficient=coefficient)

    def __repr__(self):
        return (
            f"ExporterConfig(\n"
            f"  lcd={self.lcd_url}\n"
            f"  listen={self.listen_host}:{self.listen_port}\n"
            f"  log_level={self.log_level}\n"
            f"  chain_id={self.chain_id or 'unresolved'}\n"
            f"  denom={self.denom or 'auto'} base_denom={self.base_denom or 'auto'} "
            f"coefficient={self.denom_coefficient}\n"
            f"  prefixes={self.prefixes.account}/{self.prefixes.validator}/{self.prefixes.consensus}\n"
            f"  single={self.single} proposals={self.proposals} params={self.params} "
            f"upgrades={self.upgrades} votes={self.votes} propv1={self.prop_v1}\n"
            f"  oracle={self.oracle_network if self.oracle else 'disabled'}\n"
            f"  wallets={','.join(self.wallets) or 'none'}\n"
            f"  validators={','.join(self.validators) or 'none'}\n"
            f")"
        )
