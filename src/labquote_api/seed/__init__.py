from .config import SeedConfig, load_seed
from .loader import SeedLoader, SeedReport

__all__ = ["SeedConfig", "SeedLoader", "SeedReport", "load_seed"]
