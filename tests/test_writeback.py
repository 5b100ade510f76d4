"""
单元测试: 战斗结果回写
"""

from merc_combat.combat.writeback import STASH_HOLDER, apply_combat_results
from merc_combat.models import EquipmentChange, EquipmentChangeKind, Side


def snapshot(units, unit_id):
    return next(u for u in units if u.id == unit_id)


class TestApplyCombatResults:

    def test_damage_written_for_survivors(self, arena):
        kim = arena.add_rebel("kim")
        arena.militia(dictator=1)
        ctx = arena.context()
        snapshot(ctx.rebels, "kim").health = 1

        dropped = apply_combat_results(arena.game, arena.sector, ctx.rebels + ctx.dictator_side, [])

        assert dropped == []
        assert kim.damage == 2
        assert not kim.is_dead

    def test_dead_merc_drops_everything(self, arena):
        kim = arena.add_rebel("kim", items=["handgun", "kevlar"])
        handgun, vest = kim.weapon, kim.armor
        arena.militia(dictator=1)
        ctx = arena.context()
        snap = snapshot(ctx.rebels, "kim")
        snap.health = 0
        snap.is_dead = True

        dropped = apply_combat_results(arena.game, arena.sector, ctx.rebels + ctx.dictator_side, [])

        assert {c.instance_id for c in dropped} == {handgun.instance_id, vest.instance_id}
        assert all(c.kind == EquipmentChangeKind.DROPPED for c in dropped)
        assert kim.is_dead
        assert kim.equipment == []
        assert kim not in arena.player.primary_squad.mercs
        assert kim in arena.game.merc_discard
        assert handgun in arena.game.discard

    def test_dead_dictator_not_in_merc_discard(self, arena):
        arena.add_rebel("kim")
        card = arena.reveal_dictator()
        ctx = arena.context()
        snap = snapshot(ctx.dictator_side, "castro")
        snap.health = 0
        snap.is_dead = True

        apply_combat_results(arena.game, arena.sector, ctx.rebels + ctx.dictator_side, [])

        assert card.is_dead
        assert card not in arena.game.merc_discard

    def test_destroyed_armor_removed_from_record(self, arena):
        guard = arena.add_dictator_merc("guard", items=["body-armor"])
        vest = guard.armor
        arena.add_rebel("kim")
        ctx = arena.context()
        change = EquipmentChange("guard", vest.id, vest.instance_id, EquipmentChangeKind.DESTROYED)

        apply_combat_results(arena.game, arena.sector, ctx.rebels + ctx.dictator_side, [change])

        assert guard.armor is None
        assert vest in arena.game.discard

    def test_stash_item_consumed(self, arena):
        mine = arena.item("land-mine")
        arena.sector.stash.append(mine)
        arena.add_rebel("kim")
        arena.militia(dictator=1)
        ctx = arena.context()
        change = EquipmentChange(STASH_HOLDER, mine.id, mine.instance_id, EquipmentChangeKind.CONSUMED)

        apply_combat_results(arena.game, arena.sector, ctx.rebels + ctx.dictator_side, [change])

        assert arena.sector.stash == []
        assert mine in arena.game.discard

    def test_militia_counts_rewritten(self, arena):
        """按存活快照重写民兵数，被策反的民兵计入新主人"""
        arena.add_rebel("kim")
        arena.militia(rebel=1, dictator=3)
        ctx = arena.context()
        m0 = snapshot(ctx.dictator_side, "militia-dictator-0")
        m0.is_dead = True
        m0.health = 0
        m1 = snapshot(ctx.dictator_side, "militia-dictator-1")
        m1.side = Side.REBEL
        m1.owner_id = "p1"
        m1.converted_from = Side.DICTATOR

        apply_combat_results(arena.game, arena.sector, ctx.rebels + ctx.dictator_side, [])

        assert arena.sector.dictator_militia == 1
        assert arena.sector.rebel_militia["p1"] == 2
