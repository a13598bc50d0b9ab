"""Payflow Service Layer.

Sweep engine services: custody access, treasury resolution and funding,
restrictions, single-wallet sweeping and scheduling.
"""

from payflow.services.custody_service import CustodyService
from payflow.services.funding_service import FundingAsset, FundingResult, FundingService
from payflow.services.policy_service import PolicyService
from payflow.services.scheduler_service import (
    ScheduleHandle,
    SchedulerEvent,
    SchedulerEventType,
    SchedulerService,
    ScheduleStats,
    SweepReport,
)
from payflow.services.sweeper_service import (
    SweeperService,
    SweepOutcome,
    SweepOutcomeKind,
    SweepStatus,
)
from payflow.services.treasury_service import TreasuryService

__all__ = [
    "CustodyService",
    "FundingAsset",
    "FundingResult",
    "FundingService",
    "PolicyService",
    "ScheduleHandle",
    "ScheduleStats",
    "SchedulerEvent",
    "SchedulerEventType",
    "SchedulerService",
    "SweepOutcome",
    "SweepOutcomeKind",
    "SweepReport",
    "SweepStatus",
    "SweeperService",
    "TreasuryService",
]
