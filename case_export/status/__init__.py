"""
Status Module: Export Job Status Across Server Generations

Components:
- StatusSnapshot / ExportState / EndpointChoice: canonical status model
- StatusNormalizer: raw payload -> StatusSnapshot (two-phase completion rule)
- StatusStrategy: one status endpoint and its download template
- EndpointCascade: ordered strategies, sticky per job
- ExportStatusPoller: poll loop with attempt budget
"""

from .models import EndpointChoice, ExportState, StatusSnapshot
from .normalizer import StatusNormalizer
from .strategies import DEFAULT_STRATEGIES, ListStatusStrategy, StatusStrategy
from .cascade import EndpointCascade
from .poller import ExportStatusPoller

__all__ = [
    "EndpointChoice",
    "ExportState",
    "StatusSnapshot",
    "StatusNormalizer",
    "DEFAULT_STRATEGIES",
    "ListStatusStrategy",
    "StatusStrategy",
    "EndpointCascade",
    "ExportStatusPoller",
]
