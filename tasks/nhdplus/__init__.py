# tasks/nhdplus/__init__.py

from .tasks import (
    read_points_task,
    save_enriched_points_task,
    snap_point_task,
    submit_snap_points,
)

__all__ = [
    "read_points_task",  #
    "snap_point_task",
    "submit_snap_points",
    "save_enriched_points_task",
]
