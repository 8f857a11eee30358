"""Tests for cover categories, cover types and the coordinator."""

import pytest

from coverengine.algorithms import CoverAlgorithm, CoverSample
from coverengine.config import (
    ATTACKER_COMBAT,
    ATTACKER_COMBATANT,
    ATTACKER_NEVER,
    DND5E_COVER_TYPES,
    PF2E_COVER_TYPES,
    SFRPG_COVER_TYPES,
    CoverConfig,
    CoverType,
    Thresholds,
)
from coverengine.cover import (
    CoverCategory,
    CoverCoordinator,
    category_for_percent,
    cover_types_for_percents,
    minimum_cover_from_attackers,
)
from coverengine.effects import InMemoryCoverEffectStore
from coverengine.point3d import Point3d
from coverengine.types import Scene, Token, Wall


class _CountingAlgorithm(CoverAlgorithm):
    """Returns a fixed percentage and counts how often it ran."""

    def __init__(self, config, percent=0.8, considered_tokens=False):
        super().__init__(config)
        self.percent = percent
        self.considered_tokens = considered_tokens
        self.calls = 0

    def _compute(
        self, scene, attacker, target, eye, footprint, include_walls,
        include_tokens,
    ):
        self.calls += 1
        return CoverSample(
            self.percent, considered_tokens=self.considered_tokens
        )


def _make_token(token_id, x, y, **kw) -> Token:
    defaults = dict(width=40.0, length=40.0, bottom_z=0.0, top_z=60.0)
    defaults.update(kw)
    return Token(token_id, x, y, **defaults)


def _make_scene(*walls) -> Scene:
    scene = Scene(width=1000, height=1000)
    scene.add_token(_make_token("attacker", 50, -50, eye_z=50.0, controlled=True))
    scene.add_token(_make_token("target", 50, 150))
    scene.add_token(_make_token("bystander", 400, -50))
    for w in walls:
        scene.add_wall(w)
    return scene


def _by_id(types, *ids):
    lookup = {t.id: t for t in types}
    return [lookup[i] for i in ids]


class TestCategory:
    def test_boundaries(self):
        t = Thresholds()
        assert category_for_percent(0.0, t) == CoverCategory.NONE
        assert category_for_percent(0.49, t) == CoverCategory.NONE
        assert category_for_percent(0.5, t) == CoverCategory.LOW
        assert category_for_percent(0.75, t) == CoverCategory.MEDIUM
        assert category_for_percent(0.99, t) == CoverCategory.MEDIUM
        assert category_for_percent(1.0, t) == CoverCategory.HIGH

    def test_ordering(self):
        assert CoverCategory.NONE < CoverCategory.LOW < CoverCategory.HIGH


class TestCoverTypesForPercents:
    def test_highest_ordered_wins(self):
        types = cover_types_for_percents(DND5E_COVER_TYPES, lambda t: 0.8)
        assert [t.id for t in types] == ["threeQuarters"]

    def test_per_blocker_percent(self):
        """Token-only cover applies on its own percentage."""

        def percent(t):
            return 0.6 if t.include_tokens else 0.1

        types = cover_types_for_percents(DND5E_COVER_TYPES, percent)
        assert [t.id for t in types] == ["halfToken"]

    def test_overlapping_unordered_added(self):
        types = cover_types_for_percents(SFRPG_COVER_TYPES, lambda t: 0.5)
        assert [t.id for t in types] == ["cover", "soft"]

    def test_exclusive_unordered_needs_no_ordered(self):
        types = cover_types_for_percents(PF2E_COVER_TYPES, lambda t: 1.0)
        assert [t.id for t in types] == ["standard"]

        def walls_only(t):
            return 0.0 if t.include_tokens else 1.0

        custom = [
            CoverType("lesser", "Lesser", 0.25, 1, False, False, True),
            CoverType("greater", "Greater", 1.0, None, False, True, False),
        ]
        types = cover_types_for_percents(custom, walls_only)
        assert [t.id for t in types] == ["greater"]

    def test_nothing_applies(self):
        assert cover_types_for_percents(DND5E_COVER_TYPES, lambda t: 0.1) == []


class TestMinimumCover:
    def test_weakest_ordered(self):
        half, total = _by_id(DND5E_COVER_TYPES, "half", "total")
        assert minimum_cover_from_attackers([[total], [half]]) == [half]

    def test_any_attacker_without_cover(self):
        (total,) = _by_id(DND5E_COVER_TYPES, "total")
        assert minimum_cover_from_attackers([[total], []]) == []

    def test_unordered_intersection(self):
        soft, cover, total = _by_id(SFRPG_COVER_TYPES, "soft", "cover", "total")
        result = minimum_cover_from_attackers([[total, soft], [cover, soft]])
        assert result == [cover, soft]
        assert minimum_cover_from_attackers([[total, soft], [cover]]) == [cover]

    def test_no_attackers(self):
        assert minimum_cover_from_attackers([]) == []


class TestComputeCover:
    def test_wall_to_eye_height_is_medium(self):
        scene = _make_scene(Wall("w", 0, 0, 100, 0, top=50, bottom=0))
        result = CoverCoordinator(scene).compute_cover("attacker", "target")
        assert result.category == CoverCategory.MEDIUM
        assert result.cover_types == ("medium",)

    def test_tall_wall_is_high(self):
        scene = _make_scene(Wall("w", 0, 0, 100, 0, top=200, bottom=0))
        result = CoverCoordinator(scene).compute_cover("attacker", "target")
        assert result.percent_cover == 1.0
        assert result.category == CoverCategory.HIGH
        assert result.cover_types == ("high",)

    def test_open_ground(self):
        result = CoverCoordinator(_make_scene()).compute_cover(
            "attacker", "target"
        )
        assert result.category == CoverCategory.NONE
        assert result.cover_types == ()

    def test_unknown_token(self):
        with pytest.raises(KeyError):
            CoverCoordinator(_make_scene()).compute_cover("attacker", "ghost")

    def test_repeat_query_is_cached(self):
        config = CoverConfig()
        alg = _CountingAlgorithm(config)
        coord = CoverCoordinator(_make_scene(), config, alg)
        first = coord.compute_cover("attacker", "target")
        calls = alg.calls
        assert coord.compute_cover("attacker", "target") == first
        assert alg.calls == calls

    def test_blocker_sets_share_samples(self):
        """Types with the same blockers reuse one computation."""
        config = CoverConfig()
        alg = _CountingAlgorithm(config)
        coord = CoverCoordinator(_make_scene(), config, alg)
        coord.compute_cover("attacker", "target")
        # One run with every blocker, one for the walls-only generic types
        assert alg.calls == 2


class TestInvalidation:
    def _make(self, considered_tokens=False):
        config = CoverConfig()
        alg = _CountingAlgorithm(config, considered_tokens=considered_tokens)
        coord = CoverCoordinator(_make_scene(), config, alg)
        coord.compute_cover("attacker", "target")
        return coord, alg

    def test_target_moved(self):
        coord, alg = self._make()
        calls = alg.calls
        coord.update_token(_make_token("target", 60, 150))
        coord.compute_cover("attacker", "target")
        assert alg.calls > calls

    def test_attacker_moved(self):
        coord, alg = self._make()
        calls = alg.calls
        coord.update_token(_make_token("attacker", 60, -50, eye_z=50.0))
        coord.compute_cover("attacker", "target")
        assert alg.calls > calls

    def test_unrelated_token_moved(self):
        coord, alg = self._make()
        calls = alg.calls
        coord.update_token(_make_token("bystander", 500, 500))
        coord.compute_cover("attacker", "target")
        assert alg.calls == calls

    def test_unrelated_token_moved_with_token_blockers(self):
        coord, alg = self._make(considered_tokens=True)
        calls = alg.calls
        coord.update_token(_make_token("bystander", 500, 500))
        coord.compute_cover("attacker", "target")
        assert alg.calls > calls

    def test_blocking_token_moved_into_sight(self):
        coord, alg = self._make()
        calls = alg.calls
        coord.update_token(_make_token("bystander", 50, 50))
        coord.compute_cover("attacker", "target")
        assert alg.calls > calls

    def test_blocking_token_moved_out_of_sight(self):
        config = CoverConfig()
        alg = _CountingAlgorithm(config)
        scene = _make_scene()
        scene.update_token(_make_token("bystander", 50, 50))
        coord = CoverCoordinator(scene, config, alg)
        coord.compute_cover("attacker", "target")
        calls = alg.calls
        coord.update_token(_make_token("bystander", 500, 500))
        coord.compute_cover("attacker", "target")
        assert alg.calls > calls

    def test_dead_token_moved_into_sight(self):
        """Tokens that cannot block leave the cache alone."""
        coord, alg = self._make()
        calls = alg.calls
        coord.update_token(_make_token("bystander", 50, 50, dead=True))
        coord.compute_cover("attacker", "target")
        assert alg.calls == calls

    def test_token_stepping_between_pair(self):
        coord = CoverCoordinator(_make_scene())
        assert coord.compute_cover("attacker", "target").percent_cover < 0.01
        coord.update_token(_make_token("bystander", 50, 50))
        result = coord.compute_cover("attacker", "target")
        assert result.percent_cover > 0.9

    def test_host_moved_token_then_notified(self):
        scene = _make_scene()
        coord = CoverCoordinator(scene)
        coord.compute_cover("attacker", "target")
        scene.update_token(_make_token("bystander", 50, 50))
        coord.token_moved("bystander")
        result = coord.compute_cover("attacker", "target")
        assert result.percent_cover > 0.9

    def test_wall_change_clears_everything(self):
        coord, alg = self._make()
        calls = alg.calls
        coord.update_wall(Wall("w", 500, 0, 600, 0))
        coord.compute_cover("attacker", "target")
        assert alg.calls > calls

    def test_config_change(self):
        coord, _ = self._make()
        coord.set_config(
            CoverConfig(
                algorithm="center_to_center", attacker_use=ATTACKER_NEVER
            )
        )
        assert coord.algorithm.name == "center_to_center"
        assert coord._cache == {}


class TestAttackers:
    def test_controlled_token_qualifies(self):
        coord = CoverCoordinator(_make_scene())
        assert coord.add_attacker("attacker")
        assert not coord.add_attacker("target")
        assert coord.attackers == frozenset({"attacker"})

    def test_forced_attacker(self):
        coord = CoverCoordinator(_make_scene())
        assert coord.add_attacker("target", force=True)
        coord.update_attackers()
        assert coord.is_attacker("target")
        coord.remove_attacker("target")
        assert not coord.is_attacker("target")

    def test_never(self):
        coord = CoverCoordinator(
            _make_scene(), CoverConfig(attacker_use=ATTACKER_NEVER)
        )
        assert not coord.add_attacker("attacker")
        assert not coord.use_cover_types("target")

    def test_combat_only(self):
        coord = CoverCoordinator(
            _make_scene(), CoverConfig(attacker_use=ATTACKER_COMBAT)
        )
        coord.update_attackers()
        assert coord.attackers == frozenset()
        coord.start_combat()
        assert coord.attackers == frozenset({"attacker"})
        coord.end_combat()
        assert coord.attackers == frozenset()

    def test_combatants(self):
        scene = _make_scene()
        scene.update_token(
            _make_token("attacker", 50, -50, eye_z=50.0, combatant=True)
        )
        coord = CoverCoordinator(
            scene, CoverConfig(attacker_use=ATTACKER_COMBATANT)
        )
        coord.start_combat()
        assert coord.attackers == frozenset({"attacker"})
        assert not coord.use_cover_types("target")

    def test_attackers_never_carry_cover(self):
        coord = CoverCoordinator(_make_scene())
        coord.add_attacker("attacker")
        assert not coord.use_cover_types("attacker")
        assert coord.use_cover_types("target")


class TestEffects:
    def test_cover_types_applied_to_targets(self):
        store = InMemoryCoverEffectStore()
        scene = _make_scene(Wall("w", 0, 0, 100, 0, top=200, bottom=0))
        coord = CoverCoordinator(scene, effect_store=store)
        coord.add_attacker("attacker")
        assert store.get("target") == ("high",)
        assert store.get("attacker") == ()
        assert store.get("bystander") == ()

    def test_targets_only(self):
        store = InMemoryCoverEffectStore()
        scene = _make_scene(Wall("w", 0, 0, 100, 0, top=200, bottom=0))
        coord = CoverCoordinator(
            scene, CoverConfig(targets_only=True), effect_store=store
        )
        coord.add_attacker("attacker")
        assert store.get("target") == ()
        scene.update_token(_make_token("target", 50, 150, targeted=True))
        coord.token_moved("target")
        assert store.get("target") == ("high",)

    def test_cover_removed_with_wall(self):
        store = InMemoryCoverEffectStore()
        scene = _make_scene(Wall("w", 0, 0, 100, 0, top=200, bottom=0))
        coord = CoverCoordinator(scene, effect_store=store)
        coord.add_attacker("attacker")
        coord.remove_wall("w")
        assert store.get("target") == ()

    def test_removed_token_cleared(self):
        store = InMemoryCoverEffectStore()
        scene = _make_scene(Wall("w", 0, 0, 100, 0, top=200, bottom=0))
        coord = CoverCoordinator(scene, effect_store=store)
        coord.add_attacker("attacker")
        coord.remove_token("target")
        assert store.get("target") == ()
        assert "target" not in store._effects

    def test_minimum_over_attackers(self):
        config = CoverConfig()
        alg = _CountingAlgorithm(config, percent=0.8)
        coord = CoverCoordinator(_make_scene(), config, alg)
        coord.add_attacker("attacker")
        assert coord.cover_types_from_attackers("target") == _by_id(
            coord.cover_types, "medium"
        )
        assert coord.cover_types_from_attackers("attacker") == []


class TestCoordinatorQueries:
    def test_visibility(self):
        coord = CoverCoordinator(_make_scene())
        assert coord.test_visibility("attacker", "target")
        blocked = CoverCoordinator(
            _make_scene(Wall("w", 0, 0, 100, 0, top=200, bottom=0))
        )
        assert not blocked.test_visibility("attacker", "target")
        assert not blocked.test_visibility("attacker", "target", test_points=1)

    def test_collision(self):
        coord = CoverCoordinator(
            _make_scene(Wall("w", 0, 0, 100, 0, top=50, bottom=0))
        )
        a = Point3d(50, -20, 25)
        assert coord.test_collision_3d(a, Point3d(50, 20, 25))
        hits = coord.test_collision_3d(a, Point3d(50, 20, 25), mode="sorted")
        assert [h.obstacle_id for h in hits] == ["w"]
        assert not coord.test_collision_3d(
            Point3d(50, -20, 70), Point3d(50, 20, 70)
        )

    def test_collision_with_tokens(self):
        coord = CoverCoordinator(_make_scene())
        a = Point3d(50, 100, 30)
        b = Point3d(50, 200, 30)
        assert coord.test_collision_3d(a, b)
        assert not coord.test_collision_3d(a, b, include_tokens=False)
