"""
Configuration management subsystem for Rankstream.

Static vs Dynamic Configuration
--------------------------------
**Static (Config):**
- Loaded from environment variables at startup
- Includes: database and Redis URLs, pool sizes, identity secret, HTTP bind
- Changes require a restart

**Dynamic (ConfigManager):**
- Loaded from YAML files under `config/`
- Includes: increment bounds, cache TTLs, heartbeat cadence, rate limits
- Supports in-process overrides for tests and tooling

Usage
-----
```python
from rankstream.core.config import Config, ConfigManager

db_url = Config.DATABASE_URL
ttl = ConfigManager.get("ranking.cache.ttl_seconds", 30)
```
"""

from rankstream.core.config.config import Config, Environment
from rankstream.core.config.manager import (
    ConfigInitializationError,
    ConfigManager,
    ConfigManagerError,
)

__all__ = [
    "Config",
    "Environment",
    "ConfigManager",
    "ConfigManagerError",
    "ConfigInitializationError",
]
