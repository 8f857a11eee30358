"""Cover configuration, thresholds and cover-type presets.

CoverConfig is read once (from a dict or built directly) and validated up
front; nothing here is consulted lazily at query time, so a bad setting
raises ConfigurationError on load instead of mid-query.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .errors import ConfigurationError
from .sampling import TARGET_POINT_COUNTS, VIEWER_POINT_COUNTS

ALGORITHM_POINTS = "points"
ALGORITHM_CENTER_TO_CENTER = "center_to_center"
ALGORITHM_AREA2D = "area2d"
ALGORITHM_AREA3D = "area3d"
ALGORITHMS = (
    ALGORITHM_POINTS,
    ALGORITHM_CENTER_TO_CENTER,
    ALGORITHM_AREA2D,
    ALGORITHM_AREA3D,
)

# Older setting values still found in saved configurations
ALGORITHM_ALIASES = {
    "los-center-to-center": ALGORITHM_CENTER_TO_CENTER,
    "los-area-2d": ALGORITHM_AREA2D,
    "los-area-3d": ALGORITHM_AREA3D,
}
LEGACY_POINTS_PREFIX = "los-points-"

ATTACKER_NEVER = "never"
ATTACKER_ATTACK = "attack"
ATTACKER_ALWAYS = "always"
ATTACKER_COMBAT = "combat"
ATTACKER_COMBATANT = "combatant"
ATTACKER_USES = (
    ATTACKER_NEVER,
    ATTACKER_ATTACK,
    ATTACKER_ALWAYS,
    ATTACKER_COMBAT,
    ATTACKER_COMBATANT,
)

CAMERA_TYPES = ("perspective", "orthogonal")

PRESET_GENERIC = "generic"
PRESET_DND5E = "dnd5e"
PRESET_PF2E = "pf2e"
PRESET_SFRPG = "sfrpg"


@dataclass(frozen=True)
class Thresholds:
    low: float = 0.5
    medium: float = 0.75
    high: float = 1.0

    @staticmethod
    def from_dict(d: dict | None) -> Thresholds:
        if not d:
            return Thresholds()
        t = Thresholds(
            low=float(d.get("low", 0.5)),
            medium=float(d.get("medium", 0.75)),
            high=float(d.get("high", 1.0)),
        )
        t.validate()
        return t

    def to_dict(self) -> dict:
        return {"low": self.low, "medium": self.medium, "high": self.high}

    def validate(self) -> None:
        if not (0.0 < self.low <= self.medium <= self.high <= 1.0):
            raise ConfigurationError(
                "thresholds must satisfy 0 < low <= medium <= high <= 1, got "
                f"{self.low}, {self.medium}, {self.high}"
            )


@dataclass(frozen=True)
class CoverType:
    """A named cover level with its own trigger threshold and blockers.

    `priority` orders exclusive types; None marks an unordered type that is
    considered on its own after the ordered ones.
    """

    id: str
    name: str
    percent_threshold: float
    priority: int | None = None
    can_overlap: bool = False
    include_walls: bool = True
    include_tokens: bool = False

    @staticmethod
    def from_dict(d: dict) -> CoverType:
        ct = CoverType(
            id=d["id"],
            name=d.get("name", d["id"]),
            percent_threshold=float(d["percent_threshold"]),
            priority=d.get("priority"),
            can_overlap=d.get("can_overlap", False),
            include_walls=d.get("include_walls", True),
            include_tokens=d.get("include_tokens", False),
        )
        if not (0.0 <= ct.percent_threshold <= 1.0):
            raise ConfigurationError(
                f"cover type {ct.id!r} threshold {ct.percent_threshold} "
                "is outside [0, 1]"
            )
        return ct

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "percent_threshold": self.percent_threshold,
            "priority": self.priority,
            "can_overlap": self.can_overlap,
            "include_walls": self.include_walls,
            "include_tokens": self.include_tokens,
        }

    @property
    def blocker_key(self) -> tuple[bool, bool]:
        return (self.include_walls, self.include_tokens)

    def applies(self, percent_cover: float) -> bool:
        return percent_cover >= self.percent_threshold


def generic_cover_types(thresholds: Thresholds) -> list[CoverType]:
    return [
        CoverType("low", "Low Cover", thresholds.low, 1, False, True, False),
        CoverType(
            "medium", "Medium Cover", thresholds.medium, 2, False, True, False
        ),
        CoverType("high", "High Cover", thresholds.high, 3, False, True, False),
    ]


DND5E_COVER_TYPES = [
    CoverType("halfToken", "Half Cover (tokens)", 0.5, 0, False, False, True),
    CoverType("half", "Half Cover", 0.5, 1, False, True, False),
    CoverType("threeQuarters", "Three-Quarters Cover", 0.75, 2, False, True, False),
    CoverType("total", "Total Cover", 1.0, 3, False, True, False),
]

PF2E_COVER_TYPES = [
    CoverType("lesser", "Lesser Cover", 0.25, 1, False, False, True),
    CoverType("standard", "Standard Cover", 0.5, 2, False, True, False),
    CoverType("greater", "Greater Cover", 1.0, None, False, True, False),
]

SFRPG_COVER_TYPES = [
    CoverType("soft", "Soft Cover", 0.01, None, True, False, True),
    CoverType("partial", "Partial Cover", 0.25, 1, False, True, True),
    CoverType("cover", "Cover", 0.5, 2, False, True, True),
    CoverType("improved", "Improved Cover", 0.9, 3, False, True, True),
    CoverType("total", "Total Cover", 1.0, 4, False, True, True),
]


def preset_cover_types(preset: str, thresholds: Thresholds) -> list[CoverType]:
    if preset == PRESET_GENERIC:
        return generic_cover_types(thresholds)
    if preset == PRESET_DND5E:
        return list(DND5E_COVER_TYPES)
    if preset == PRESET_PF2E:
        return list(PF2E_COVER_TYPES)
    if preset == PRESET_SFRPG:
        return list(SFRPG_COVER_TYPES)
    raise ConfigurationError(f"unknown cover preset {preset!r}")


def normalize_algorithm(name: str) -> str:
    """Map current and legacy algorithm names to a canonical one."""
    if name in ALGORITHMS:
        return name
    if name in ALGORITHM_ALIASES:
        return ALGORITHM_ALIASES[name]
    if name.startswith(LEGACY_POINTS_PREFIX):
        return ALGORITHM_POINTS
    raise ConfigurationError(f"unknown cover algorithm {name!r}")


def _legacy_point_count(name: str) -> int | None:
    """'los-points-center' -> 1, 'los-points-9' -> 9, etc."""
    if not name.startswith(LEGACY_POINTS_PREFIX):
        return None
    suffix = name[len(LEGACY_POINTS_PREFIX):]
    if suffix == "center":
        return 1
    if suffix.isdigit():
        return int(suffix)
    return None


@dataclass
class CoverConfig:
    algorithm: str = ALGORITHM_AREA3D
    target_points: int = 9
    viewer_points: int = 1
    inset: float = 0.75
    large_target: bool = False
    grid_size: float = 100.0
    thresholds: Thresholds = field(default_factory=Thresholds)
    cover_preset: str = PRESET_GENERIC
    cover_types: list[CoverType] | None = None
    live_tokens_block: bool = True
    dead_tokens_block: bool = False
    prone_tokens_block: bool = False
    walls_block: bool = True
    tiles_block: bool = True
    vision_offset: tuple[float, float, float] = (0.0, 0.0, 0.0)
    attacker_use: str = ATTACKER_ALWAYS
    targets_only: bool = False
    camera_type: str = "perspective"
    near_cutoff: float = -1.0
    projection_multiplier: float = 1000.0
    max_radius: float = 1e6
    visible_epsilon: float = 0.005

    @staticmethod
    def from_dict(d: dict) -> CoverConfig:
        algorithm = d.get("algorithm", ALGORITHM_AREA3D)
        target_points = d.get("target_points")
        if target_points is None:
            target_points = _legacy_point_count(algorithm) or 9
        types = d.get("cover_types")
        offset = d.get("vision_offset", (0.0, 0.0, 0.0))
        cfg = CoverConfig(
            algorithm=normalize_algorithm(algorithm),
            target_points=int(target_points),
            viewer_points=int(d.get("viewer_points", 1)),
            inset=float(d.get("inset", 0.75)),
            large_target=d.get("large_target", False),
            grid_size=float(d.get("grid_size", 100.0)),
            thresholds=Thresholds.from_dict(d.get("thresholds")),
            cover_preset=d.get("cover_preset", PRESET_GENERIC),
            cover_types=(
                [CoverType.from_dict(t) for t in types]
                if types is not None
                else None
            ),
            live_tokens_block=d.get("live_tokens_block", True),
            dead_tokens_block=d.get("dead_tokens_block", False),
            prone_tokens_block=d.get("prone_tokens_block", False),
            walls_block=d.get("walls_block", True),
            tiles_block=d.get("tiles_block", True),
            vision_offset=(
                float(offset[0]),
                float(offset[1]),
                float(offset[2]),
            ),
            attacker_use=d.get("attacker_use", ATTACKER_ALWAYS),
            targets_only=d.get("targets_only", False),
            camera_type=d.get("camera_type", "perspective"),
            near_cutoff=float(d.get("near_cutoff", -1.0)),
            projection_multiplier=float(
                d.get("projection_multiplier", 1000.0)
            ),
            max_radius=float(d.get("max_radius", 1e6)),
            visible_epsilon=float(d.get("visible_epsilon", 0.005)),
        )
        cfg.validate()
        return cfg

    def to_dict(self) -> dict:
        d: dict = {
            "algorithm": self.algorithm,
            "target_points": self.target_points,
            "viewer_points": self.viewer_points,
            "inset": self.inset,
            "large_target": self.large_target,
            "grid_size": self.grid_size,
            "thresholds": self.thresholds.to_dict(),
            "cover_preset": self.cover_preset,
            "live_tokens_block": self.live_tokens_block,
            "dead_tokens_block": self.dead_tokens_block,
            "prone_tokens_block": self.prone_tokens_block,
            "walls_block": self.walls_block,
            "tiles_block": self.tiles_block,
            "vision_offset": list(self.vision_offset),
            "attacker_use": self.attacker_use,
            "targets_only": self.targets_only,
            "camera_type": self.camera_type,
            "near_cutoff": self.near_cutoff,
            "projection_multiplier": self.projection_multiplier,
            "max_radius": self.max_radius,
            "visible_epsilon": self.visible_epsilon,
        }
        if self.cover_types is not None:
            d["cover_types"] = [t.to_dict() for t in self.cover_types]
        return d

    def validate(self) -> None:
        if self.algorithm not in ALGORITHMS:
            raise ConfigurationError(
                f"unknown cover algorithm {self.algorithm!r}"
            )
        if self.target_points not in TARGET_POINT_COUNTS:
            raise ConfigurationError(
                f"target_points must be one of {TARGET_POINT_COUNTS}, "
                f"got {self.target_points}"
            )
        if self.viewer_points not in VIEWER_POINT_COUNTS:
            raise ConfigurationError(
                f"viewer_points must be one of {VIEWER_POINT_COUNTS}, "
                f"got {self.viewer_points}"
            )
        if not (0.0 <= self.inset <= 0.99):
            raise ConfigurationError(f"inset {self.inset} is outside [0, 0.99]")
        if self.grid_size <= 0:
            raise ConfigurationError(f"grid_size must be positive: {self.grid_size}")
        self.thresholds.validate()
        if self.attacker_use not in ATTACKER_USES:
            raise ConfigurationError(
                f"unknown attacker use {self.attacker_use!r}"
            )
        if self.camera_type not in CAMERA_TYPES:
            raise ConfigurationError(
                f"unknown camera type {self.camera_type!r}"
            )
        if self.near_cutoff >= 0:
            raise ConfigurationError(
                f"near_cutoff must be negative, got {self.near_cutoff}"
            )
        if self.projection_multiplier <= 0 or self.max_radius <= 0:
            raise ConfigurationError(
                "projection_multiplier and max_radius must be positive"
            )
        if not (0.0 <= self.visible_epsilon < 1.0):
            raise ConfigurationError(
                f"visible_epsilon {self.visible_epsilon} is outside [0, 1)"
            )
        # Raises for an unknown preset even when explicit types are given
        preset_cover_types(self.cover_preset, self.thresholds)

    def resolved_cover_types(self) -> list[CoverType]:
        if self.cover_types is not None:
            return list(self.cover_types)
        return preset_cover_types(self.cover_preset, self.thresholds)
