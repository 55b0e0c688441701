"""Storage backends for hookrelay.

Persists subscriptions, the delivery log and API keys to Qdrant, either a
server or the local in-memory client.

Example:
    ```python
    from hookrelay.storage import HookRelayStorage

    async with HookRelayStorage(url=":memory:") as storage:
        await storage.store_subscription(subscription)
    ```
"""

from .base import COLLECTION_NAMES, IN_MEMORY_LOCATION
from .client import HookRelayStorage

__all__ = [
    "HookRelayStorage",
    "COLLECTION_NAMES",
    "IN_MEMORY_LOCATION",
]
