"""Cover decisions: categories, cover types, caching and attackers.

CoverCoordinator ties the pieces together for a Scene:

  * compute_cover runs the configured algorithm for an attacker/target
    pair, maps the percentage to a CoverCategory and to the configured
    cover types, and caches the result per target per attacker.
  * The attacker set decides which tokens count as viewpoints. With several
    attackers the target keeps the weakest exclusive cover type that holds
    against all of them, plus the overlapping types they all agree on.
  * Resulting type ids are pushed to a CoverEffectStore.

Invalidation: moving a token drops its own entries, every entry where it
was the attacker, every entry that had tokens among its blockers, and,
when the token can block sight, every entry whose sight region (the hull
of both footprints and the eye) it overlaps before or after the move.
Changing walls, tiles or drawings, or the configuration, drops everything.
A token gaining or losing the attacker role drops all entries mentioning
it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Sequence

from shapely.geometry.base import BaseGeometry

from . import collision
from .algorithms import CoverAlgorithm, build_algorithm, with_points
from .config import (
    ATTACKER_ALWAYS,
    ATTACKER_ATTACK,
    ATTACKER_COMBAT,
    ATTACKER_COMBATANT,
    ATTACKER_NEVER,
    CoverConfig,
    CoverType,
    Thresholds,
)
from .effects import CoverEffectStore, InMemoryCoverEffectStore
from .log import get_logger
from .obstacles import (
    drawing_points,
    tile_points,
    token_can_block,
    token_prism,
    wall_index,
)
from .placeables import PlanePoints
from .point3d import Point3d
from .polygons import convex_hull
from .types import Drawing, Scene, Tile, Token, Wall

log = get_logger(__name__)


class CoverCategory(enum.IntEnum):
    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3


def category_for_percent(
    percent: float, thresholds: Thresholds
) -> CoverCategory:
    if percent >= thresholds.high:
        return CoverCategory.HIGH
    if percent >= thresholds.medium:
        return CoverCategory.MEDIUM
    if percent >= thresholds.low:
        return CoverCategory.LOW
    return CoverCategory.NONE


def cover_types_for_percents(
    types: Sequence[CoverType],
    percent_fn: Callable[[CoverType], float],
) -> list[CoverType]:
    """Cover types that apply given a per-type percent cover.

    The highest-priority ordered type that applies wins alone. Unordered
    types (priority None) are added on top when they apply, except that a
    non-overlapping one is dropped once an ordered type was chosen.
    """
    ordered = sorted(
        (t for t in types if t.priority is not None),
        key=lambda t: t.priority,  # type: ignore[arg-type,return-value]
        reverse=True,
    )
    out: list[CoverType] = []
    for t in ordered:
        if t.applies(percent_fn(t)):
            out.append(t)
            break
    have_ordered = bool(out)
    for t in types:
        if t.priority is not None:
            continue
        if have_ordered and not t.can_overlap:
            continue
        if t.applies(percent_fn(t)):
            out.append(t)
    return out


def minimum_cover_from_attackers(
    type_sets: Sequence[Sequence[CoverType]],
) -> list[CoverType]:
    """Cover that holds against every attacker.

    The ordered part is the lowest-priority ordered type across attackers,
    and is empty if any attacker leaves the target without one. Unordered
    types are kept only if every attacker produced them.
    """
    if not type_sets:
        return []
    lowest: CoverType | None = None
    lowest_priority = 0
    for types in type_sets:
        ordered = [(t.priority, t) for t in types if t.priority is not None]
        if not ordered:
            lowest = None
            break
        priority, best = max(ordered, key=lambda pair: pair[0])
        if lowest is None or priority < lowest_priority:
            lowest, lowest_priority = best, priority
    common = [t for t in type_sets[0] if t.priority is None]
    for types in type_sets[1:]:
        ids = {t.id for t in types}
        common = [t for t in common if t.id in ids]
    return ([lowest] if lowest is not None else []) + common


@dataclass
class CoverResult:
    percent_cover: float
    category: CoverCategory
    cover_types: tuple[str, ...] = ()
    warnings: list[str] = field(default_factory=list)


@dataclass
class CoverEntry:
    result: CoverResult
    types: list[CoverType]
    considered_tokens: bool = False
    # 2D area any blocker of this pair must touch
    region: BaseGeometry | None = None


class CoverCoordinator:
    def __init__(
        self,
        scene: Scene,
        config: CoverConfig | None = None,
        algorithm: CoverAlgorithm | None = None,
        effect_store: CoverEffectStore | None = None,
    ) -> None:
        self.scene = scene
        self.config = config if config is not None else CoverConfig()
        self.config.validate()
        self.algorithm = (
            algorithm if algorithm is not None else build_algorithm(self.config)
        )
        self.effect_store: CoverEffectStore = (
            effect_store
            if effect_store is not None
            else InMemoryCoverEffectStore()
        )
        self.cover_types = self.config.resolved_cover_types()
        self.combat_started = False
        # target id -> attacker id -> entry
        self._cache: dict[str, dict[str, CoverEntry]] = {}
        self._attackers: set[str] = set()
        self._forced_attackers: set[str] = set()

    def __repr__(self) -> str:
        return (
            f"CoverCoordinator({self.algorithm!r}, "
            f"{len(self._attackers)} attackers)"
        )

    # -- queries --

    def _token(self, token_id: str) -> Token:
        try:
            return self.scene.tokens[token_id]
        except KeyError:
            raise KeyError(f"unknown token {token_id!r}") from None

    def compute_cover(self, attacker_id: str, target_id: str) -> CoverResult:
        return self._entry(attacker_id, target_id).result

    def cover_types_for_pair(
        self, attacker_id: str, target_id: str
    ) -> list[CoverType]:
        return list(self._entry(attacker_id, target_id).types)

    def _entry(self, attacker_id: str, target_id: str) -> CoverEntry:
        by_attacker = self._cache.setdefault(target_id, {})
        entry = by_attacker.get(attacker_id)
        if entry is not None:
            return entry
        entry = self._compute_entry(attacker_id, target_id)
        by_attacker[attacker_id] = entry
        return entry

    def _compute_entry(self, attacker_id: str, target_id: str) -> CoverEntry:
        attacker = self._token(attacker_id)
        target = self._token(target_id)
        samples = {}

        def sample(key: tuple[bool, bool]):
            if key not in samples:
                samples[key] = self.algorithm.compute(
                    self.scene,
                    attacker,
                    target,
                    include_walls=key[0],
                    include_tokens=key[1],
                )
            return samples[key]

        main = sample((True, True))
        types = cover_types_for_percents(
            self.cover_types, lambda t: sample(t.blocker_key).percent_cover
        )
        percent = min(1.0, max(0.0, main.percent_cover))
        result = CoverResult(
            percent_cover=percent,
            category=category_for_percent(percent, self.config.thresholds),
            cover_types=tuple(t.id for t in types),
            warnings=list(main.warnings),
        )
        log.debug(
            "cover.computed",
            attacker=attacker_id,
            target=target_id,
            percent=percent,
            category=result.category.name,
        )
        return CoverEntry(
            result=result,
            types=types,
            considered_tokens=any(s.considered_tokens for s in samples.values()),
            region=convex_hull(
                attacker.footprint()
                + target.footprint()
                + [self.algorithm.eye(attacker).to_2d()]
            ),
        )

    def cover_types_from_attackers(
        self, target_id: str, attacker_ids: Sequence[str] | None = None
    ) -> list[CoverType]:
        if attacker_ids is None:
            attacker_ids = sorted(self._attackers)
        ids = [a for a in attacker_ids if a != target_id]
        if not ids:
            return []
        return minimum_cover_from_attackers(
            [self.cover_types_for_pair(a, target_id) for a in ids]
        )

    def test_visibility(
        self,
        viewer_id: str,
        target_id: str,
        test_points: int | None = None,
        threshold: float = 0.0,
    ) -> bool:
        algorithm = self.algorithm
        if test_points is not None:
            algorithm = build_algorithm(with_points(self.config, test_points))
        return algorithm.has_los(
            self.scene, self._token(viewer_id), self._token(target_id), threshold
        )

    def test_collision_3d(
        self,
        origin: Point3d,
        destination: Point3d,
        mode: str = collision.MODE_ANY,
        include_tokens: bool = True,
    ):
        """Collide a segment with every wall, tile, drawing and token."""
        faces: list[PlanePoints] = []
        index = wall_index(self.scene, self.config.max_radius)
        faces.extend(
            w for w in index.along_segment(origin, destination)
            if w.wall.blocks_sight
        )
        for tile in self.scene.tiles.values():
            if tile.blocks_sight:
                tp = tile_points(self.scene, tile)
                if tp is not None:
                    faces.append(tp)
        for drawing in self.scene.drawings.values():
            if drawing.blocks_sight:
                dp = drawing_points(self.scene, drawing)
                if dp is not None:
                    faces.append(dp)
        if include_tokens:
            for tok in self.scene.tokens.values():
                tp = token_prism(self.scene, tok)
                if tp is not None:
                    faces.extend(tp.all_faces())
        return collision.test_collision_3d(origin, destination, faces, mode)

    # -- attackers --

    def is_attacker(self, token_id: str) -> bool:
        return token_id in self._attackers

    @property
    def attackers(self) -> frozenset[str]:
        return frozenset(self._attackers)

    def qualifies_as_attacker(self, token: Token) -> bool:
        use = self.config.attacker_use
        if use == ATTACKER_NEVER:
            return False
        if use == ATTACKER_COMBATANT:
            return self.combat_started and token.combatant
        if use == ATTACKER_COMBAT and not self.combat_started:
            return False
        return token.controlled

    def add_attacker(self, token_id: str, force: bool = False) -> bool:
        token = self._token(token_id)
        if not force and not self.qualifies_as_attacker(token):
            return False
        if force:
            self._forced_attackers.add(token_id)
        if token_id not in self._attackers:
            self._attackers.add(token_id)
            self._role_changed(token_id)
        return True

    def remove_attacker(self, token_id: str) -> None:
        self._forced_attackers.discard(token_id)
        if token_id in self._attackers:
            self._attackers.discard(token_id)
            self._role_changed(token_id)

    def update_attackers(self) -> None:
        wanted = {
            t.id
            for t in self.scene.tokens.values()
            if self.qualifies_as_attacker(t)
        } | (self._forced_attackers & set(self.scene.tokens))
        changed = wanted ^ self._attackers
        if not changed:
            return
        self._attackers = wanted
        for token_id in changed:
            self._invalidate_token(token_id)
        log.debug("cover.attackers_changed", attackers=sorted(wanted))
        self.refresh_cover_types()

    def start_combat(self) -> None:
        self.combat_started = True
        self.update_attackers()
        self.refresh_cover_types()

    def end_combat(self) -> None:
        self.combat_started = False
        self.update_attackers()
        self.refresh_cover_types()

    def _role_changed(self, token_id: str) -> None:
        self._invalidate_token(token_id)
        self.refresh_cover_types()

    # -- cover types on tokens --

    def use_cover_types(self, token_id: str) -> bool:
        """Whether this token should currently carry cover types."""
        if token_id in self._attackers:
            return False
        token = self._token(token_id)
        if self.config.targets_only and not token.targeted:
            return False
        use = self.config.attacker_use
        if use in (ATTACKER_NEVER, ATTACKER_ATTACK):
            return False
        if use == ATTACKER_ALWAYS:
            return True
        if use == ATTACKER_COMBAT:
            return self.combat_started
        return self.combat_started and token.combatant

    def update_cover_types(self, token_id: str) -> tuple[str, ...]:
        if not self.use_cover_types(token_id):
            self.effect_store.clear(token_id)
            return ()
        ids = tuple(t.id for t in self.cover_types_from_attackers(token_id))
        self.effect_store.apply(token_id, ids)
        return ids

    def refresh_cover_types(self) -> None:
        for token_id in list(self.scene.tokens):
            self.update_cover_types(token_id)

    # -- invalidation --

    def _invalidate_token(self, token_id: str) -> None:
        self._cache.pop(token_id, None)
        for by_attacker in self._cache.values():
            by_attacker.pop(token_id, None)

    def token_moved(
        self, token_id: str, previous: Token | None = None
    ) -> None:
        """Drop cache entries the token may have changed.

        `previous` is the token before the move; hosts that update the
        scene themselves pass it so entries near the old position go too.
        """
        self._invalidate_token(token_id)
        states = (previous, self.scene.tokens.get(token_id))
        shapes = [
            convex_hull(t.footprint())
            for t in states
            if t is not None and token_can_block(t, self.config)
        ]

        def stale(entry: CoverEntry) -> bool:
            if entry.considered_tokens:
                return True
            if entry.region is None:
                return False
            return any(entry.region.intersects(s) for s in shapes)

        for by_attacker in self._cache.values():
            for attacker_id in [a for a, e in by_attacker.items() if stale(e)]:
                del by_attacker[attacker_id]
        log.debug("cover.token_moved", token=token_id)
        if self._attackers:
            self.refresh_cover_types()

    def obstacle_changed(self) -> None:
        self._cache.clear()
        log.debug("cover.cache_cleared")
        if self._attackers:
            self.refresh_cover_types()

    def set_config(self, config: CoverConfig) -> None:
        config.validate()
        self.config = config
        self.algorithm = build_algorithm(config)
        self.cover_types = config.resolved_cover_types()
        self._cache.clear()
        self.update_attackers()
        self.refresh_cover_types()

    # -- scene updates --

    def update_token(self, token: Token) -> None:
        previous = self.scene.tokens.get(token.id)
        self.scene.update_token(token)
        self.token_moved(token.id, previous)

    def remove_token(self, token_id: str) -> None:
        previous = self.scene.tokens.get(token_id)
        self.scene.remove_token(token_id)
        self._attackers.discard(token_id)
        self._forced_attackers.discard(token_id)
        self.effect_store.clear(token_id)
        self.token_moved(token_id, previous)

    def update_wall(self, wall: Wall) -> None:
        self.scene.update_wall(wall)
        self.obstacle_changed()

    def remove_wall(self, wall_id: str) -> None:
        self.scene.remove_wall(wall_id)
        self.obstacle_changed()

    def update_tile(self, tile: Tile) -> None:
        self.scene.update_tile(tile)
        self.obstacle_changed()

    def remove_tile(self, tile_id: str) -> None:
        self.scene.remove_tile(tile_id)
        self.obstacle_changed()

    def update_drawing(self, drawing: Drawing) -> None:
        self.scene.update_drawing(drawing)
        self.obstacle_changed()

    def remove_drawing(self, drawing_id: str) -> None:
        self.scene.remove_drawing(drawing_id)
        self.obstacle_changed()
