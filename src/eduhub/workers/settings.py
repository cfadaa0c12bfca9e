"""arq worker settings module.

Import path for arq CLI: arq eduhub.workers.settings.WorkerSettings
"""

from __future__ import annotations

from eduhub.workers.expiry_worker import ExpiryWorkerSettings as WorkerSettings

__all__ = ["WorkerSettings"]
