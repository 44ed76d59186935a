"""SQLBridge: an asynchronous MySQL connection façade.

SQLBridge provides:
- Connection lifecycle with simulated nested transactions
- SQL synthesis for select, count, insert, update, delete and stored procedures
- Streaming query results with progress notifications
- YAML-based configuration and a small CLI
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Core exports
from sqlbridge.exceptions import SQLBridgeError, ConfigurationError, DatabaseError

__all__ = [
    "__version__",
    "SQLBridgeError",
    "ConfigurationError",
    "DatabaseError",
]
