"""Scene records: walls, tiles, drawings and tokens, plus the Scene registry.

Records hold the authoritative position and elevation data supplied by the
host. Geometry wrappers (placeables.py) are built from these records and
cached on the Scene by id; updating a record replaces it and drops the
cached wrapper so it is rebuilt on next use.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable

from .point3d import AABB3d, Point2D, Point3d

# Wall sight restriction
SIGHT_NORMAL = "normal"
SIGHT_LIMITED = "limited"
SIGHT_NONE = "none"

# One-directional walls: the wall is passable when viewed from this side of
# A -> B ("left" means the viewer is counter-clockwise of A -> B).
DIRECTION_BOTH = "both"
DIRECTION_LEFT = "left"
DIRECTION_RIGHT = "right"

DOOR_NONE = "none"
DOOR_OPEN = "open"
DOOR_CLOSED = "closed"

SHAPE_RECTANGLE = "rectangle"
SHAPE_CIRCLE = "circle"
SHAPE_POLYGON = "polygon"

CIRCLE_SEGMENTS = 16


def _opt_float(v: Any) -> float | None:
    return None if v is None else float(v)


@dataclass
class Wall:
    id: str
    ax: float
    ay: float
    bx: float
    by: float
    top: float | None = None  # None is unbounded above
    bottom: float | None = None  # None is unbounded below
    sight: str = SIGHT_NORMAL
    direction: str = DIRECTION_BOTH
    door: str = DOOR_NONE

    @staticmethod
    def from_dict(d: dict) -> Wall:
        c = d.get("c") or [d.get("ax"), d.get("ay"), d.get("bx"), d.get("by")]
        return Wall(
            id=d["id"],
            ax=c[0],
            ay=c[1],
            bx=c[2],
            by=c[3],
            top=_opt_float(d.get("top")),
            bottom=_opt_float(d.get("bottom")),
            sight=d.get("sight", SIGHT_NORMAL),
            direction=d.get("direction", DIRECTION_BOTH),
            door=d.get("door", DOOR_NONE),
        )

    def to_dict(self) -> dict:
        d: dict = {
            "id": self.id,
            "c": [self.ax, self.ay, self.bx, self.by],
            "sight": self.sight,
        }
        if self.top is not None:
            d["top"] = self.top
        if self.bottom is not None:
            d["bottom"] = self.bottom
        if self.direction != DIRECTION_BOTH:
            d["direction"] = self.direction
        if self.door != DOOR_NONE:
            d["door"] = self.door
        return d

    @property
    def a(self) -> Point2D:
        return (self.ax, self.ay)

    @property
    def b(self) -> Point2D:
        return (self.bx, self.by)

    @property
    def top_z(self) -> float:
        return math.inf if self.top is None else self.top

    @property
    def bottom_z(self) -> float:
        return -math.inf if self.bottom is None else self.bottom

    @property
    def is_limited(self) -> bool:
        return self.sight == SIGHT_LIMITED

    @property
    def blocks_sight(self) -> bool:
        return self.sight != SIGHT_NONE and self.door != DOOR_OPEN

    def orient_point(self, p: Point2D) -> int:
        """1 if p is left (counter-clockwise) of A -> B, -1 if right, 0 on the line."""
        cross = (self.bx - self.ax) * (p[1] - self.ay) - (self.by - self.ay) * (
            p[0] - self.ax
        )
        if abs(cross) < 1e-8:
            return 0
        return 1 if cross > 0 else -1


@dataclass
class Tile:
    """Axis-aligned floor/ceiling tile; (x, y) is the top-left corner."""

    id: str
    x: float
    y: float
    width: float
    height: float
    elevation: float | None
    blocks_sight: bool = True

    @staticmethod
    def from_dict(d: dict) -> Tile:
        return Tile(
            id=d["id"],
            x=d["x"],
            y=d["y"],
            width=d["width"],
            height=d["height"],
            elevation=_opt_float(d.get("elevation")),
            blocks_sight=d.get("blocks_sight", True),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "elevation": self.elevation,
            "blocks_sight": self.blocks_sight,
        }

    def polygon(self) -> list[Point2D]:
        x0, y0 = self.x, self.y
        x1, y1 = x0 + self.width, y0 + self.height
        return [(x0, y0), (x1, y0), (x1, y1), (x0, y1)]


@dataclass
class Drawing:
    """Flat polygon at an elevation, e.g. a floor section."""

    id: str
    points: list[Point2D]
    elevation: float | None
    blocks_sight: bool = True

    @staticmethod
    def from_dict(d: dict) -> Drawing:
        return Drawing(
            id=d["id"],
            points=[(float(p[0]), float(p[1])) for p in d["points"]],
            elevation=_opt_float(d.get("elevation")),
            blocks_sight=d.get("blocks_sight", True),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "points": [list(p) for p in self.points],
            "elevation": self.elevation,
            "blocks_sight": self.blocks_sight,
        }


@dataclass
class Token:
    """An actor's body: a footprint extruded from bottom_z to top_z.

    (x, y) is the footprint center. `border` is an optional polygon of
    offsets from the center, used when shape == "polygon".
    """

    id: str
    x: float
    y: float
    width: float
    length: float
    bottom_z: float | None = 0.0
    top_z: float | None = None
    shape: str = SHAPE_RECTANGLE
    border: list[Point2D] | None = None
    eye_z: float | None = None
    prone: bool = False
    dead: bool = False
    name: str | None = None
    # Host interaction state used to pick attackers
    controlled: bool = False
    targeted: bool = False
    combatant: bool = False

    @staticmethod
    def from_dict(d: dict) -> Token:
        border = d.get("border")
        return Token(
            id=d["id"],
            x=d["x"],
            y=d["y"],
            width=d["width"],
            length=d.get("length", d["width"]),
            bottom_z=_opt_float(d.get("bottom_z", 0.0)),
            top_z=_opt_float(d.get("top_z")),
            shape=d.get("shape", SHAPE_RECTANGLE),
            border=[(float(p[0]), float(p[1])) for p in border] if border else None,
            eye_z=_opt_float(d.get("eye_z")),
            prone=d.get("prone", False),
            dead=d.get("dead", False),
            name=d.get("name"),
            controlled=d.get("controlled", False),
            targeted=d.get("targeted", False),
            combatant=d.get("combatant", False),
        )

    def to_dict(self) -> dict:
        d: dict = {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "length": self.length,
            "bottom_z": self.bottom_z,
            "top_z": self.top_z,
            "shape": self.shape,
        }
        if self.border:
            d["border"] = [list(p) for p in self.border]
        if self.eye_z is not None:
            d["eye_z"] = self.eye_z
        for key in ("prone", "dead", "controlled", "targeted", "combatant"):
            if getattr(self, key):
                d[key] = True
        if self.name:
            d["name"] = self.name
        return d

    @property
    def center_2d(self) -> Point2D:
        return (self.x, self.y)

    def has_elevation(self) -> bool:
        return self.bottom_z is not None and self.top_z is not None

    @property
    def height(self) -> float:
        if not self.has_elevation():
            return 0.0
        return self.top_z - self.bottom_z  # type: ignore[operator]

    @property
    def effective_top_z(self) -> float:
        """Top of the body; prone tokens count as half height."""
        top = self.top_z  # type: ignore[assignment]
        if self.prone:
            return top - self.height * 0.5
        return top

    @property
    def avg_z(self) -> float:
        """Midpoint elevation; zero-height tokens still count as 1 unit tall."""
        height = (self.effective_top_z - self.bottom_z) or 1.0
        return self.bottom_z + height * 0.5

    def eye_point(self, offset: Point3d | None = None) -> Point3d:
        z = self.eye_z if self.eye_z is not None else self.effective_top_z
        p = Point3d(self.x, self.y, z)
        return p + offset if offset is not None else p

    def center_3d(self) -> Point3d:
        return Point3d(self.x, self.y, self.avg_z)

    def footprint(self) -> list[Point2D]:
        """Footprint polygon in scene coordinates."""
        if self.shape == SHAPE_POLYGON and self.border:
            return [(self.x + px, self.y + py) for px, py in self.border]
        if self.shape == SHAPE_CIRCLE:
            rx = self.width / 2.0
            ry = self.length / 2.0
            return [
                (
                    self.x + rx * math.cos(2 * math.pi * i / CIRCLE_SEGMENTS),
                    self.y + ry * math.sin(2 * math.pi * i / CIRCLE_SEGMENTS),
                )
                for i in range(CIRCLE_SEGMENTS)
            ]
        hw = self.width / 2.0
        hl = self.length / 2.0
        return [
            (self.x - hw, self.y - hl),
            (self.x + hw, self.y - hl),
            (self.x + hw, self.y + hl),
            (self.x - hw, self.y + hl),
        ]

    def aabb(self) -> AABB3d:
        pts = self.footprint()
        return AABB3d(
            min=Point3d(min(p[0] for p in pts), min(p[1] for p in pts), self.bottom_z),
            max=Point3d(
                max(p[0] for p in pts), max(p[1] for p in pts), self.effective_top_z
            ),
        )


@dataclass
class Scene:
    """Registry of scene records keyed by id.

    Geometry wrappers are cached per (kind, id) and dropped whenever the
    underlying record is replaced or removed.
    """

    width: float
    height: float
    walls: dict[str, Wall] = field(default_factory=dict)
    tiles: dict[str, Tile] = field(default_factory=dict)
    drawings: dict[str, Drawing] = field(default_factory=dict)
    tokens: dict[str, Token] = field(default_factory=dict)
    _geometry: dict[tuple[str, str, Any], Any] = field(
        default_factory=dict, repr=False
    )

    @staticmethod
    def from_dict(d: dict) -> Scene:
        scene = Scene(width=d["width"], height=d["height"])
        for w in d.get("walls", []):
            scene.add_wall(Wall.from_dict(w))
        for t in d.get("tiles", []):
            scene.add_tile(Tile.from_dict(t))
        for dr in d.get("drawings", []):
            scene.add_drawing(Drawing.from_dict(dr))
        for tok in d.get("tokens", []):
            scene.add_token(Token.from_dict(tok))
        return scene

    def to_dict(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "walls": [w.to_dict() for w in self.walls.values()],
            "tiles": [t.to_dict() for t in self.tiles.values()],
            "drawings": [d.to_dict() for d in self.drawings.values()],
            "tokens": [t.to_dict() for t in self.tokens.values()],
        }

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        return (0.0, 0.0, self.width, self.height)

    def add_wall(self, wall: Wall) -> None:
        self.walls[wall.id] = wall
        self._drop_geometry("wall", wall.id)

    def add_tile(self, tile: Tile) -> None:
        self.tiles[tile.id] = tile
        self._drop_geometry("tile", tile.id)

    def add_drawing(self, drawing: Drawing) -> None:
        self.drawings[drawing.id] = drawing
        self._drop_geometry("drawing", drawing.id)

    def add_token(self, token: Token) -> None:
        self.tokens[token.id] = token
        self._drop_geometry("token", token.id)
        # A token's constrained border depends on walls, not on other tokens
        self._drop_geometry("border", token.id)

    update_wall = add_wall
    update_tile = add_tile
    update_drawing = add_drawing
    update_token = add_token

    def remove_wall(self, wall_id: str) -> None:
        self.walls.pop(wall_id, None)
        self._drop_geometry("wall", wall_id)

    def remove_tile(self, tile_id: str) -> None:
        self.tiles.pop(tile_id, None)
        self._drop_geometry("tile", tile_id)

    def remove_drawing(self, drawing_id: str) -> None:
        self.drawings.pop(drawing_id, None)
        self._drop_geometry("drawing", drawing_id)

    def remove_token(self, token_id: str) -> None:
        self.tokens.pop(token_id, None)
        self._drop_geometry("token", token_id)
        self._drop_geometry("border", token_id)

    def cached_geometry(
        self,
        kind: str,
        obj_id: str,
        build: Callable[[], Any],
        variant: Any = None,
    ) -> Any:
        """Build once per object and variant until the object changes.

        `variant` separates builds of the same object that depend on a
        setting, such as the radius walls are clamped to.
        """
        key = (kind, obj_id, variant)
        geom = self._geometry.get(key)
        if geom is None:
            geom = build()
            self._geometry[key] = geom
        return geom

    def _drop_geometry(self, kind: str, obj_id: str) -> None:
        self._drop_matching(lambda k: k[:2] == (kind, obj_id))
        if kind == "wall":
            # Wall changes can reshape any constrained token border
            self._drop_matching(lambda k: k[0] == "border")
            self._drop_matching(lambda k: k[:2] == ("index", "walls"))

    def _drop_matching(self, match: Callable[[tuple], bool]) -> None:
        for key in [k for k in self._geometry if match(k)]:
            del self._geometry[key]
