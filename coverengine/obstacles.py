"""Select the obstacles that can stand between a viewer and a target.

Everything is first narrowed in 2D to the convex hull of the viewer point
and the target footprint. Walls then go through the sight rules below;
tiles and drawings must sit at an elevation between the viewer and the far
side of the target; tokens must be enabled by the blocking toggles.

Wall rules, in order:

  * blocks sight (not a sight-"none" wall and not an open door)
  * not collinear with both the viewer and the target center
  * one-directional walls are skipped from their passable side
  * underground walls (top below 0) are skipped for viewers at or above 0
  * walls hidden behind a tile that holds both the viewer and the wall in
    2D and separates them vertically are skipped

Geometry wrappers are cached on the Scene. A record that cannot be turned
into geometry is logged and left out of the query rather than failing it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from shapely.geometry import MultiPoint, Point
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry.base import BaseGeometry

from .collision import WallIndex
from .config import CoverConfig
from .errors import DegenerateGeometry, MissingObstacleData
from .gjk import shapes_overlap
from .log import get_logger
from .placeables import (
    DrawingPoints,
    PlanePoints,
    TilePoints,
    TokenPoints,
    WallPoints,
)
from .point3d import Point2D, Point3d
from .polygons import visibility_polygon
from .types import (
    DIRECTION_LEFT,
    DIRECTION_RIGHT,
    Drawing,
    Scene,
    Tile,
    Token,
    Wall,
)

log = get_logger(__name__)


@dataclass
class ObstacleSet:
    walls: list[WallPoints] = field(default_factory=list)
    terrain_walls: list[WallPoints] = field(default_factory=list)
    tiles: list[TilePoints] = field(default_factory=list)
    drawings: list[DrawingPoints] = field(default_factory=list)
    tokens: list[TokenPoints] = field(default_factory=list)

    def __len__(self) -> int:
        return (
            len(self.walls)
            + len(self.terrain_walls)
            + len(self.tiles)
            + len(self.drawings)
            + len(self.tokens)
        )

    def blocking_faces(self, viewer: Point3d) -> list[PlanePoints]:
        """Solid faces: normal walls, tiles, drawings and viewer-facing
        token faces."""
        faces: list[PlanePoints] = []
        faces.extend(self.walls)
        faces.extend(self.tiles)
        faces.extend(self.drawings)
        for tok in self.tokens:
            faces.extend(tok.faces(viewer))
        return faces

    def all_faces(self, viewer: Point3d) -> list[PlanePoints]:
        return self.blocking_faces(viewer) + list(self.terrain_walls)

    @property
    def considers_tokens(self) -> bool:
        return bool(self.tokens)


def _build(kind: str, obj_id: str, build: Callable[[], object]):
    try:
        return build()
    except (MissingObstacleData, DegenerateGeometry) as e:
        log.warning(
            "obstacles.dropped", kind=kind, obstacle=obj_id, reason=str(e)
        )
        return None


def wall_points(scene: Scene, wall: Wall, max_radius: float) -> WallPoints | None:
    return _build(
        "wall",
        wall.id,
        lambda: scene.cached_geometry(
            "wall", wall.id, lambda: WallPoints(wall, max_radius), max_radius
        ),
    )


def tile_points(scene: Scene, tile: Tile) -> TilePoints | None:
    return _build(
        "tile",
        tile.id,
        lambda: scene.cached_geometry("tile", tile.id, lambda: TilePoints(tile)),
    )


def drawing_points(scene: Scene, drawing: Drawing) -> DrawingPoints | None:
    return _build(
        "drawing",
        drawing.id,
        lambda: scene.cached_geometry(
            "drawing", drawing.id, lambda: DrawingPoints(drawing)
        ),
    )


def token_prism(
    scene: Scene, token: Token, footprint: list[Point2D] | None = None
) -> TokenPoints | None:
    if footprint is not None:
        return _build("token", token.id, lambda: TokenPoints(token, footprint))
    return _build(
        "token",
        token.id,
        lambda: scene.cached_geometry(
            "token", token.id, lambda: TokenPoints(token)
        ),
    )


def wall_index(scene: Scene, max_radius: float = 1e6) -> WallIndex:
    def build() -> WallIndex:
        built = [wall_points(scene, w, max_radius) for w in scene.walls.values()]
        return WallIndex([w for w in built if w is not None])

    return scene.cached_geometry("index", "walls", build, max_radius)


def constrained_border(
    scene: Scene, token: Token, max_radius: float = 1e6
) -> list[Point2D]:
    """Token footprint clipped to what its center can see past walls.

    Walls that only partly overlap the token's height do not constrain it.
    Tokens with no wall crossing the footprint keep their plain footprint.
    """

    def build() -> list[Point2D]:
        footprint = token.footprint()
        poly = ShapelyPolygon(footprint)
        if not token.has_elevation():
            return footprint
        bottom = token.bottom_z
        top = token.effective_top_z
        segments = []
        for w in wall_index(scene, max_radius).query(poly):
            wall = w.wall
            if not wall.blocks_sight or wall.is_limited:
                continue
            if wall.top_z < top or wall.bottom_z > bottom:
                continue
            segments.append((wall.ax, wall.ay, wall.bx, wall.by))
        if not segments:
            return footprint
        x0, y0, x1, y1 = poly.bounds
        vis = visibility_polygon(
            token.x, token.y, segments, (x0 - 1, y0 - 1, x1 + 1, y1 + 1)
        )
        if len(vis) < 3:
            return footprint
        clipped = poly.intersection(ShapelyPolygon(vis).buffer(0))
        if clipped.is_empty:
            return footprint
        if clipped.geom_type != "Polygon":
            center = Point(token.x, token.y)
            clipped = max(
                (g for g in getattr(clipped, "geoms", []) if g.area > 0),
                key=lambda g: (g.distance(center) == 0, g.area),
                default=poly,
            )
        return list(clipped.exterior.coords)[:-1]

    return scene.cached_geometry("border", token.id, build)


def sight_hull(viewer: Point3d, footprint: list[Point2D]) -> BaseGeometry:
    return MultiPoint(list(footprint) + [viewer.to_2d()]).convex_hull


def _tile_separates(tile: Tile, viewer: Point3d, wall: WallPoints) -> bool:
    if not tile.blocks_sight or tile.elevation is None:
        return False
    poly = ShapelyPolygon(tile.polygon())
    w = wall.wall
    if not (
        poly.covers(Point(viewer.x, viewer.y))
        and poly.covers(Point(w.ax, w.ay))
        and poly.covers(Point(w.bx, w.by))
    ):
        return False
    elev = tile.elevation
    if viewer.z > elev and wall.top_z <= elev:
        return True
    return viewer.z < elev and wall.bottom_z >= elev


def wall_is_relevant(
    wall: WallPoints,
    viewer: Point3d,
    target_center: Point2D,
    tiles: list[Tile],
) -> bool:
    w = wall.wall
    if not w.blocks_sight:
        return False
    side = w.orient_point(viewer.to_2d())
    if side == 0 and w.orient_point(target_center) == 0:
        return False
    if w.direction == DIRECTION_LEFT and side == 1:
        return False
    if w.direction == DIRECTION_RIGHT and side == -1:
        return False
    if w.top_z < 0 and viewer.z >= 0:
        return False
    return not any(_tile_separates(t, viewer, wall) for t in tiles)


def token_can_block(token: Token, config: CoverConfig) -> bool:
    if token.dead:
        return config.dead_tokens_block
    if token.prone:
        return config.prone_tokens_block
    return config.live_tokens_block


def gather_obstacles(
    scene: Scene,
    viewer: Point3d,
    target: Token,
    config: CoverConfig,
    viewer_token: Token | None = None,
    include_walls: bool = True,
    include_tokens: bool = True,
    target_footprint: list[Point2D] | None = None,
) -> ObstacleSet:
    footprint = (
        target_footprint if target_footprint is not None else target.footprint()
    )
    hull = sight_hull(viewer, footprint)
    out = ObstacleSet()
    target_bottom = target.bottom_z if target.bottom_z is not None else 0.0
    target_top = (
        target.effective_top_z if target.top_z is not None else target_bottom
    )

    if include_walls and config.walls_block:
        tiles = list(scene.tiles.values())
        for wp in wall_index(scene, config.max_radius).query(hull):
            if not wall_is_relevant(wp, viewer, target.center_2d, tiles):
                continue
            if wp.is_limited:
                out.terrain_walls.append(wp)
            else:
                out.walls.append(wp)

    if config.tiles_block:
        lo = min(viewer.z, target_bottom)
        hi = max(viewer.z, target_top)
        for tile in scene.tiles.values():
            if not tile.blocks_sight:
                continue
            tp = tile_points(scene, tile)
            if tp is None or not lo < tp.elevation < hi:
                continue
            if ShapelyPolygon(tile.polygon()).intersects(hull):
                out.tiles.append(tp)
        for drawing in scene.drawings.values():
            if not drawing.blocks_sight:
                continue
            dp = drawing_points(scene, drawing)
            if dp is None or not lo < dp.elevation < hi:
                continue
            if ShapelyPolygon(drawing.points).intersects(hull):
                out.drawings.append(dp)

    if include_tokens:
        hull_pts = (
            list(hull.exterior.coords)[:-1]
            if hull.geom_type == "Polygon"
            else list(hull.coords)
        )
        excluded = {target.id}
        if viewer_token is not None:
            excluded.add(viewer_token.id)
        for tok in scene.tokens.values():
            if tok.id in excluded or not token_can_block(tok, config):
                continue
            tp = token_prism(scene, tok)
            if tp is None:
                continue
            if shapes_overlap(tp.footprint, hull_pts):
                out.tokens.append(tp)

    log.debug(
        "obstacles.gathered",
        target=target.id,
        walls=len(out.walls),
        terrain_walls=len(out.terrain_walls),
        tiles=len(out.tiles),
        drawings=len(out.drawings),
        tokens=len(out.tokens),
    )
    return out
