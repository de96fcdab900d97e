"""
Configuration management subsystem.

Static vs Dynamic Configuration
--------------------------------
**Static (Config):**
- Loaded from environment variables at startup
- Includes: environment, log settings, database URL, resync debounce

**Dynamic (ConfigManager, ``fuelpoints.core.config.manager``):**
- Loaded from YAML defaults plus in-memory overrides
- Includes: reward tables, boost quota, cadences, validation bounds
- Imported from its module directly; it depends on the logging stack,
  which itself reads the static Config.
"""

from fuelpoints.core.config.config import Config, Environment

__all__ = [
    "Config",
    "Environment",
]
