"""
单元测试: 撤退判定
"""

import pytest

from merc_combat.combat.retreat import RetreatEvaluator
from merc_combat.errors import AlreadyRetreatedError, InvalidRetreatError
from merc_combat.models import Side


def sector_ids(sectors):
    return [s.id for s in sectors]


class TestValidSectors:

    def test_adjacent_empty_sectors(self, arena):
        arena.add_rebel("kim")
        valid = RetreatEvaluator.get_valid_retreat_sectors(arena.game, arena.sector, Side.REBEL, arena.player)
        assert sector_ids(valid) == ["0-0", "0-2"]

    def test_enemy_sector_excluded_unless_outnumbered(self, arena):
        arena.add_rebel("kim")
        west = arena.game.get_sector("0-0")
        west.dictator_militia = 2
        valid = RetreatEvaluator.get_valid_retreat_sectors(arena.game, arena.sector, Side.REBEL, arena.player)
        assert sector_ids(valid) == ["0-2"]

        west.rebel_militia["p1"] = 3
        valid = RetreatEvaluator.get_valid_retreat_sectors(arena.game, arena.sector, Side.REBEL, arena.player)
        assert sector_ids(valid) == ["0-0", "0-2"]

    def test_combat_locked_excluded(self, arena):
        arena.game.combat_locked.add("0-2")
        valid = RetreatEvaluator.get_valid_retreat_sectors(arena.game, arena.sector, Side.REBEL)
        assert sector_ids(valid) == ["0-0"]

    def test_dictator_side_needs_no_rebels(self, arena):
        arena.game.get_sector("0-2").rebel_militia["p1"] = 1
        valid = RetreatEvaluator.get_valid_retreat_sectors(arena.game, arena.sector, Side.DICTATOR)
        assert sector_ids(valid) == ["0-0"]


class TestCanRetreat:

    def test_requires_living_mercs(self, arena):
        arena.militia(rebel=2)
        assert not RetreatEvaluator.can_retreat(arena.game, arena.sector, Side.REBEL, arena.player)

        arena.add_rebel("kim")
        assert RetreatEvaluator.can_retreat(arena.game, arena.sector, Side.REBEL, arena.player)

    def test_requires_valid_sector(self, arena):
        arena.add_rebel("kim")
        arena.game.combat_locked.update({"0-0", "0-2"})
        assert not RetreatEvaluator.can_retreat(arena.game, arena.sector, Side.REBEL, arena.player)


class TestExecuteRetreat:

    def test_moves_squad_and_marks_snapshots(self, arena):
        arena.add_rebel("kim")
        arena.militia(dictator=1)
        ctx = arena.context()
        retreated = set()

        moved = RetreatEvaluator.execute_retreat(
            arena.game, arena.sector, arena.game.get_sector("0-0"), Side.REBEL, arena.player,
            retreated=retreated, combatants=ctx.rebels + ctx.dictator_side,
        )

        assert moved == ["kim"]
        assert retreated == {"kim"}
        assert arena.player.primary_squad.sector_id == "0-0"
        kim = ctx.rebels[0]
        assert kim.retreated
        assert kim.sector_id == "0-0"

    def test_fallen_mercs_not_reported(self, arena):
        """快照已阵亡的佣兵 (记录尚未回写) 不算撤退"""
        arena.add_rebel("kim")
        arena.add_rebel("lee")
        arena.militia(dictator=1)
        ctx = arena.context()
        lee = next(u for u in ctx.rebels if u.id == "lee")
        lee.health = 0
        lee.is_dead = True
        retreated = set()

        moved = RetreatEvaluator.execute_retreat(
            arena.game, arena.sector, arena.game.get_sector("0-0"), Side.REBEL, arena.player,
            retreated=retreated, combatants=ctx.rebels + ctx.dictator_side,
        )

        assert moved == ["kim"]
        assert retreated == {"kim"}
        assert not lee.retreated

    def test_second_retreat_rejected(self, arena):
        arena.add_rebel("kim")
        retreated = set()
        destination = arena.game.get_sector("0-0")
        RetreatEvaluator.execute_retreat(
            arena.game, arena.sector, destination, Side.REBEL, arena.player, retreated=retreated
        )
        with pytest.raises(AlreadyRetreatedError):
            RetreatEvaluator.execute_retreat(
                arena.game, arena.sector, destination, Side.REBEL, arena.player, retreated=retreated
            )

    def test_invalid_destination(self, arena):
        arena.add_rebel("kim")
        with pytest.raises(InvalidRetreatError):
            RetreatEvaluator.execute_retreat(
                arena.game, arena.sector, arena.sector, Side.REBEL, arena.player, retreated=set()
            )
        assert arena.player.primary_squad.sector_id == "0-1"

    def test_no_mercs_to_retreat(self, arena):
        arena.militia(rebel=1)
        with pytest.raises(InvalidRetreatError):
            RetreatEvaluator.execute_retreat(
                arena.game, arena.sector, arena.game.get_sector("0-0"), Side.REBEL, arena.player,
                retreated=set(),
            )

    def test_dictator_squad_retreat(self, arena):
        arena.add_dictator_merc("guard")
        moved = RetreatEvaluator.execute_retreat(
            arena.game, arena.sector, arena.game.get_sector("0-2"), Side.DICTATOR, retreated=set()
        )
        assert moved == ["guard"]
        assert arena.dictator.squad.sector_id == "0-2"
