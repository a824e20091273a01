"""Application interfaces (ports): repository and service protocols.

Define contracts for infrastructure implementations (DIP).
No runtime imports from app.infrastructure or app.api.
"""

from app.application.interfaces.repositories import (
    ISyncAccountRepository,
    ISyncJobRepository,
)
from app.application.interfaces.services import ISyncExecutor, ISyncProgressPublisher

__all__ = [
    "ISyncAccountRepository",
    "ISyncExecutor",
    "ISyncJobRepository",
    "ISyncProgressPublisher",
]
