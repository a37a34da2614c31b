"""
calculations.py — Bed and PCA FTE calculations

Upstream arithmetic that turns bed counts and the therapist allocation
result into the per-team PCA target consumed by step_reset:

  beds_per_pt          = total_beds / total_pt_on_duty
  beds_for_relieving   = round(beds_per_pt × pt[team] − beds[team])
  average_pca[team]    = round_to_nearest_quarter(
                             beds_per_pt × pt[team] / (total_beds / total_pca_on_duty))
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict

from rehab_roster.slots import round_to_nearest_quarter

logger = logging.getLogger(__name__)


@dataclass
class FteCalculation:
    beds_per_pt: float
    beds_for_relieving: Dict[str, int]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_fte(
    total_beds: float,
    total_pt_on_duty: float,
    beds_per_team: Dict[str, float],
    pt_per_team: Dict[str, float],
) -> FteCalculation:
    """
    Beds per therapist and how many beds each team should relieve (positive)
    or take on (negative) to match its therapist share.
    """
    if total_pt_on_duty <= 0:
        logger.warning("No therapist FTE on duty — beds per PT set to 0")
        return FteCalculation(beds_per_pt=0.0, beds_for_relieving={t: 0 for t in beds_per_team})

    beds_per_pt = total_beds / total_pt_on_duty
    relieving = {
        team: _round_half_up(beds_per_pt * pt_per_team.get(team, 0.0) - beds)
        for team, beds in beds_per_team.items()
    }
    return FteCalculation(beds_per_pt=beds_per_pt, beds_for_relieving=relieving)


def calculate_pca_fte(
    total_beds: float,
    total_pca_on_duty: float,
    pt_per_team: Dict[str, float],
    beds_per_pt: float,
) -> Dict[str, float]:
    """Average PCA FTE per team, rounded to the nearest quarter."""
    if total_beds <= 0 or total_pca_on_duty <= 0:
        return {team: 0.0 for team in pt_per_team}
    beds_per_pca = total_beds / total_pca_on_duty
    return {
        team: round_to_nearest_quarter(beds_per_pt * pt / beds_per_pca)
        for team, pt in pt_per_team.items()
    }
