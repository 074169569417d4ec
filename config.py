import os
from dataclasses import dataclass, field, asdict
from typing import Optional
import yaml
from pathlib import Path

@dataclass
class SamplingConfig:
    """Configuration for frame sampling"""
    interval_seconds: float = 1.0  # One frame per second of playback


@dataclass
class HashConfig:
    """Configuration for perceptual hashing"""
    algorithm: str = "phash"  # Options: phash, dhash, ahash, whash
    hash_size: int = 8  # 8x8 -> 64-bit hashes
    max_dimension: int = 1000


@dataclass
class SimilarityConfig:
    """Configuration for fingerprint comparison"""
    strategy: str = "positional"  # Options: positional, string
    frame_threshold: int = 10  # Max differing bits per frame pair
    string_tolerance: float = 0.30  # Fraction of differing characters (string strategy)
    duplicate_threshold: float = 0.6


@dataclass
class CacheConfig:
    """Configuration for the fingerprint cache"""
    backend: str = "redis"  # Options: redis, memory
    host: str = "localhost"
    port: int = 6379
    password: str = ""
    db: int = 0
    key_prefix: str = "video:"
    fingerprint_ttl_seconds: int = 7 * 24 * 3600
    default_expiration_seconds: int = 24 * 3600


@dataclass
class SystemConfig:
    """System-wide configuration"""
    n_workers: int = 4
    hash_batch_size: int = 32
    log_level: str = "INFO"
    log_dir: str = "logs"
    show_progress: bool = True
    quick_check_frames: Optional[int] = None  # Opt-in partial duplicate check

    # Frame sampling
    sampling: SamplingConfig = field(default_factory=SamplingConfig)

    # Perceptual hashing
    hashing: HashConfig = field(default_factory=HashConfig)

    # Fingerprint comparison
    similarity: SimilarityConfig = field(default_factory=SimilarityConfig)

    # Fingerprint cache
    cache: CacheConfig = field(default_factory=CacheConfig)

    def save(self, path: str = "config.yaml"):
        """Save configuration to YAML file"""
        config_dict = asdict(self)

        with open(path, 'w') as f:
            yaml.dump(config_dict, f, default_flow_style=False, indent=2)

    @classmethod
    def load(cls, path: str = "config.yaml") -> 'SystemConfig':
        """Load configuration from YAML file, then apply environment overrides"""
        config = cls()

        if Path(path).exists():
            with open(path, 'r') as f:
                config_dict = yaml.safe_load(f) or {}

            # Load system settings
            config.n_workers = config_dict.get('n_workers', config.n_workers)
            config.hash_batch_size = config_dict.get('hash_batch_size', config.hash_batch_size)
            config.log_level = config_dict.get('log_level', config.log_level)
            config.log_dir = config_dict.get('log_dir', config.log_dir)
            config.show_progress = config_dict.get('show_progress', config.show_progress)
            config.quick_check_frames = config_dict.get('quick_check_frames', config.quick_check_frames)

            # Load nested sections
            if 'sampling' in config_dict:
                config.sampling = _merge(SamplingConfig, config_dict['sampling'])
            if 'hashing' in config_dict:
                config.hashing = _merge(HashConfig, config_dict['hashing'])
            if 'similarity' in config_dict:
                config.similarity = _merge(SimilarityConfig, config_dict['similarity'])
            if 'cache' in config_dict:
                config.cache = _merge(CacheConfig, config_dict['cache'])

        config.apply_env()
        return config

    def apply_env(self, environ=None):
        """Override Redis connection settings from REDIS_* environment variables"""
        environ = os.environ if environ is None else environ

        if environ.get('REDIS_HOST'):
            self.cache.host = environ['REDIS_HOST']
        if environ.get('REDIS_PORT'):
            self.cache.port = int(environ['REDIS_PORT'])
        if environ.get('REDIS_PASSWORD'):
            self.cache.password = environ['REDIS_PASSWORD']


def _merge(section_cls, values: dict):
    """Build a config section from a dict, keeping defaults for missing keys"""
    defaults = section_cls()
    known = {k: v for k, v in (values or {}).items() if hasattr(defaults, k)}
    return section_cls(**{**asdict(defaults), **known})
