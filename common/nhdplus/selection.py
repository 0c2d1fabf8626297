# common/nhdplus/selection.py
"""Nearest-flowline selection among the candidates of one proximity query."""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import shapely

from .feature_service import FlowlineCandidate, FlowlineCandidates
from .geometry import GeometryEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectedMatch:
    """
    The flowline chosen for a point.

    Attributes:
        flowline: The nearest candidate.
        snap_distance_m: Point-to-line distance in meters (>= 0).
    """

    flowline: FlowlineCandidate
    snap_distance_m: float


def compute_candidate_distances(
    point: shapely.Point,
    candidates: FlowlineCandidates,
    engine: GeometryEngine,
) -> List[float]:
    """
    Point-to-line distance (meters) to every candidate, in response order.
    Candidates whose distance cannot be computed get NaN.
    """
    distances = []
    for candidate in candidates:
        distance = engine.distance(point, candidate.geometry, candidates.crs)
        if distance is None or math.isnan(distance):
            logger.debug(
                f"Distance to candidate {candidate.response_index} is undefined; ignoring it."
            )
            distance = math.nan
        distances.append(float(distance))
    return distances


def select_nearest_flowline(
    point: shapely.Point,
    candidates: FlowlineCandidates,
    engine: GeometryEngine,
) -> Optional[SelectedMatch]:
    """
    Picks the candidate nearest to `point`.

    Ties (equal computed distances) go to the candidate that came first in
    the service response; candidates are never re-sorted.

    Args:
        point: The input point, already harmonized into `candidates.crs`.
        candidates: Candidates from one proximity query.
        engine: Supplies point-to-line distances.

    Returns:
        The nearest candidate, or None when there is nothing to choose from.
    """
    if not candidates.candidates:
        return None

    distances = compute_candidate_distances(point, candidates, engine)

    best_idx: Optional[int] = None
    for idx, distance in enumerate(distances):
        if math.isnan(distance):
            continue
        # Strict comparison keeps the earliest candidate on ties.
        if best_idx is None or distance < distances[best_idx]:
            best_idx = idx

    if best_idx is None:
        return None

    # Floating-point noise can yield a tiny negative distance for points on the line.
    snap_distance = max(distances[best_idx], 0.0)

    return SelectedMatch(
        flowline=candidates.candidates[best_idx],
        snap_distance_m=snap_distance,
    )
