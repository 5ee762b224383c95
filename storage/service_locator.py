"""Service locator for the process-wide storage manager."""

import threading
from typing import Optional

from storage.config import StorageConfig
from storage.manager import StorageManager

_storage_manager: Optional[StorageManager] = None
_lock = threading.Lock()


def set_storage_manager(manager: Optional[StorageManager]):
    """Set global storage manager instance"""
    global _storage_manager
    with _lock:
        _storage_manager = manager


def get_storage_manager() -> StorageManager:
    """Get global storage manager instance, creating it from the environment on first use"""
    global _storage_manager
    if _storage_manager is None:
        with _lock:
            if _storage_manager is None:
                _storage_manager = StorageManager(config=StorageConfig.from_env())
    return _storage_manager


async def close_storage_manager():
    """Close and forget the global storage manager, if one was created"""
    global _storage_manager
    with _lock:
        manager, _storage_manager = _storage_manager, None
    if manager is not None:
        await manager.close()
