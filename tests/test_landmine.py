"""
单元测试: 战前地雷结算
"""

import pytest

from merc_combat.combat.landmine import detonate_land_mines, find_land_mine
from merc_combat.models import DamageRecord, Side, UnitKind
from merc_combat.world import Sector


@pytest.fixture
def mined_sector(make_item):
    return Sector(id="0-1", row=0, col=1, stash=[make_item("radio"), make_item("land-mine")])


def detonate(sector, attackers, defenders, make_context, abilities, equipment_registry):
    ctx = make_context(attackers, defenders)
    return detonate_land_mines(sector, attackers, defenders, ctx, abilities, equipment_registry)


class TestLandMine:

    def test_find_land_mine(self, mined_sector, equipment_registry):
        assert find_land_mine(mined_sector, equipment_registry).id == "land-mine"
        assert find_land_mine(Sector(id="x", row=0, col=0), equipment_registry) is None

    def test_no_mine(self, make_unit, make_context, abilities, equipment_registry):
        kim = make_unit("kim")
        guard = make_unit("guard", side=Side.DICTATOR)
        outcome = detonate(Sector(id="x", row=0, col=0), [kim], [guard], make_context, abilities, equipment_registry)
        assert not outcome.triggered
        assert kim.health == 3

    def test_undefended_sector_does_not_trigger(
            self, mined_sector, make_unit, make_context, abilities, equipment_registry):
        kim = make_unit("kim")
        guard = make_unit("guard", side=Side.DICTATOR)
        guard.is_dead = True
        outcome = detonate(mined_sector, [kim], [guard], make_context, abilities, equipment_registry)
        assert not outcome.triggered

    def test_detonation_damages_mercs_and_one_militia_per_player(
            self, mined_sector, make_unit, make_context, abilities, equipment_registry):
        """护甲先吸收地雷伤害；每名玩家只损失 1 名民兵"""
        kim = make_unit("kim", armor=1, id="kim")
        lee = make_unit("lee", id="lee")
        p1_a = make_unit(kind=UnitKind.MILITIA, owner_id="p1", health=1, id="p1-a")
        p1_b = make_unit(kind=UnitKind.MILITIA, owner_id="p1", health=1, id="p1-b")
        p2_a = make_unit(kind=UnitKind.MILITIA, owner_id="p2", health=1, id="p2-a")
        defender = make_unit(kind=UnitKind.MILITIA, side=Side.DICTATOR, health=1)

        outcome = detonate(
            mined_sector, [kim, lee, p1_a, p1_b, p2_a], [defender],
            make_context, abilities, equipment_registry
        )

        assert outcome.detonated
        assert outcome.mine.id == "land-mine"
        assert outcome.damage == [
            DamageRecord("kim", 1, 0),
            DamageRecord("lee", 0, 1),
            DamageRecord("p1-a", 0, 1),
            DamageRecord("p2-a", 0, 1),
        ]
        assert p1_b.health == 1
        # 地雷在回写阶段才从物资箱移除
        assert len(mined_sector.stash) == 2

    def test_squidhead_disarms(self, mined_sector, make_unit, make_context, abilities, equipment_registry):
        squidhead = make_unit("squidhead", id="squidhead")
        kim = make_unit("kim")
        defender = make_unit(kind=UnitKind.MILITIA, side=Side.DICTATOR, health=1)

        outcome = detonate(mined_sector, [kim, squidhead], [defender], make_context, abilities, equipment_registry)

        assert outcome.triggered
        assert not outcome.detonated
        assert outcome.disarmed_by == "squidhead"
        assert outcome.damage == []
        assert kim.health == 3
