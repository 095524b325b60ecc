"""Progress reporting for orchestration runs."""

from eks_cluster.progress.observer import (
    LoggingObserver,
    ObserverWarning,
    ProgressObserver,
    QueueObserver,
)

__all__ = [
    "LoggingObserver",
    "ObserverWarning",
    "ProgressObserver",
    "QueueObserver",
]
