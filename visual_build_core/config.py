"""
Configuration for the build/cache layer.

Settings resolve in two tiers: environment variable (shell or a .env file),
then hard-coded default.
"""

import logging
import os
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .exceptions import MalformedInputError


_KNOWN_SETTINGS = {
    'code_cache_size':       ('VBC_CODE_CACHE_SIZE', '50'),
    'validation_cache_size': ('VBC_VALIDATION_CACHE_SIZE', '100'),
    'eviction_policy':       ('VBC_EVICTION_POLICY', 'fifo'),
    'hash_algorithm':        ('VBC_HASH_ALGORITHM', 'blake2b'),
    'default_mode':          ('VBC_DEFAULT_MODE', 'rust'),
    'log_level':             ('VBC_LOG_LEVEL', 'INFO'),
}


def load_env_file(path: Optional[str] = None) -> bool:
    """Load a .env file into the environment; shell variables take precedence."""
    if path is None:
        path = os.path.join(os.getcwd(), '.env')
    return load_dotenv(path, override=False)


def resolve_setting(env_var: str, default: str) -> str:
    """Environment variable if set and non-blank, otherwise the default."""
    env_val = os.environ.get(env_var, '').strip()
    if env_val:
        return env_val
    return default


def _to_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise MalformedInputError(f"Setting '{name}' must be an integer, got {raw!r}")
    if value < 1:
        raise MalformedInputError(f"Setting '{name}' must be at least 1, got {value}")
    return value


@dataclass
class CacheConfig:
    """Cache sizes, eviction policy and hashing settings."""
    code_cache_size: int = 50
    validation_cache_size: int = 100
    eviction_policy: str = "fifo"      # "fifo" or "lru"
    hash_algorithm: str = "blake2b"    # "blake2b" or "rolling32"
    default_mode: str = "rust"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> 'CacheConfig':
        values = {name: resolve_setting(env_var, default)
                  for name, (env_var, default) in _KNOWN_SETTINGS.items()}
        return cls(
            code_cache_size=_to_int('code_cache_size', values['code_cache_size']),
            validation_cache_size=_to_int('validation_cache_size', values['validation_cache_size']),
            eviction_policy=values['eviction_policy'].lower(),
            hash_algorithm=values['hash_algorithm'].lower(),
            default_mode=values['default_mode'].lower(),
            log_level=values['log_level'].upper(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def configure_logging(level: Optional[str] = None):
    """Basic logging setup for hosts embedding the build layer."""
    level_name = (level or resolve_setting('VBC_LOG_LEVEL', 'INFO')).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
