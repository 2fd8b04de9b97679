"""Fair queue rebalancing for jam sessions."""

__all__ = [
    "FALLBACK_PRIORITY",
    "FairScore",
    "StolenAllocation",
    "allocate_stolen_slots",
    "assemble_queue",
    "compute_arrival_ranks",
    "compute_round_indices",
    "fair_order",
    "fair_score",
    "rebalance",
]

from .fairness import (
    FALLBACK_PRIORITY,
    FairScore,
    compute_arrival_ranks,
    compute_round_indices,
    fair_order,
    fair_score,
)
from .rebalance import assemble_queue, rebalance
from .stolen import StolenAllocation, allocate_stolen_slots
