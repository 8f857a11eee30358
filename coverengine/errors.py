"""Error taxonomy for the cover engine.

Geometry-level errors (DegenerateGeometry, MissingObstacleData) are raised by
the builders and caught where obstacles are gathered, so a single bad wall or
token drops out of the query instead of aborting it. ConfigurationError is
raised only while loading a CoverConfig.
"""

from __future__ import annotations


class CoverEngineError(Exception):
    pass


class DegenerateGeometry(CoverEngineError):
    """Zero-area, zero-length or collinear input."""


class SingularMatrix(CoverEngineError):
    """Matrix with a (near) zero determinant."""


class MissingObstacleData(CoverEngineError):
    """Obstacle lacks the position or elevation needed to build geometry."""

    def __init__(self, obstacle_id: str, missing: str) -> None:
        super().__init__(f"{obstacle_id}: missing {missing}")
        self.obstacle_id = obstacle_id
        self.missing = missing


class ConfigurationError(CoverEngineError, ValueError):
    """Unsupported algorithm, threshold or option in a CoverConfig."""
