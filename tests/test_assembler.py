"""
测试 CombatantAssembler
验证 单位记录 -> 战斗快照 的装配逻辑
"""
import pytest

from merc_combat.errors import CombatStateError, EmptySideError
from merc_combat.factory import CombatantAssembler
from merc_combat.models import Side, UnitKind


class TestBuild:

    def test_rebels_mercs_then_militia(self, arena):
        arena.add_rebel("kim")
        arena.add_rebel("lee")
        arena.militia(rebel=2, dictator=1)

        rebels, dictator_side = CombatantAssembler.build(arena.game, arena.sector, arena.player)

        assert [u.id for u in rebels] == ["kim", "lee", "militia-p1-0", "militia-p1-1"]
        assert all(u.side == Side.REBEL for u in rebels)
        assert rebels[0].squad_id == "p1-primary"
        assert rebels[2].kind == UnitKind.MILITIA
        assert [u.id for u in dictator_side] == ["militia-dictator-0"]

    def test_dictator_militia_then_mercs(self, arena):
        arena.add_rebel("kim")
        arena.add_dictator_merc("guard")
        arena.militia(dictator=1)

        _, dictator_side = CombatantAssembler.build(arena.game, arena.sector)

        assert [u.id for u in dictator_side] == ["militia-dictator-0", "guard"]
        assert dictator_side[1].squad_id == "dictator-squad"

    def test_dictator_card_only_when_revealed(self, arena):
        arena.add_rebel("kim")
        arena.militia(dictator=1)
        _, hidden = CombatantAssembler.build(arena.game, arena.sector)
        assert not any(u.is_dictator for u in hidden)

        arena.reveal_dictator()
        _, revealed = CombatantAssembler.build(arena.game, arena.sector)
        card = next(u for u in revealed if u.is_dictator)
        assert card.id == "castro"
        assert card.base_combat == 3

    def test_equipment_and_damage_carried(self, arena):
        kim = arena.add_rebel("kim", combat=1, items=["handgun", "kevlar"])
        kim.damage = 1
        arena.militia(dictator=1)

        rebels, _ = CombatantAssembler.build(arena.game, arena.sector)

        snap = rebels[0]
        assert snap.base_combat == 2
        assert snap.armor == 1
        assert snap.health == 2
        assert snap.max_health == 3
        assert snap.source is kim

    def test_extra_health(self, arena):
        arena.add_rebel("juicer", extra_health=2)
        arena.militia(dictator=1)
        rebels, _ = CombatantAssembler.build(arena.game, arena.sector)
        assert rebels[0].max_health == 5

    def test_dead_and_absent_mercs_excluded(self, arena):
        dead = arena.add_rebel("kim")
        dead.is_dead = True
        arena.add_rebel("lee", squad="secondary")     # 副小队不在战斗区域
        arena.militia(rebel=1, dictator=1)

        rebels, _ = CombatantAssembler.build(arena.game, arena.sector)
        assert [u.id for u in rebels] == ["militia-p1-0"]

    def test_build_does_not_modify_records(self, arena):
        kim = arena.add_rebel("kim", items=["kevlar"])
        arena.militia(dictator=2)
        rebels, _ = CombatantAssembler.build(arena.game, arena.sector)
        rebels[0].health = 0
        rebels[0].armor = 0
        assert kim.damage == 0
        assert kim.armor is not None
        assert arena.sector.dictator_militia == 2

    @pytest.mark.parametrize("rebel_militia,dictator_militia,side", [
        (0, 1, Side.REBEL),
        (1, 0, Side.DICTATOR),
    ])
    def test_empty_side(self, arena, rebel_militia, dictator_militia, side):
        arena.militia(rebel=rebel_militia, dictator=dictator_militia)
        with pytest.raises(EmptySideError) as exc_info:
            CombatantAssembler.build(arena.game, arena.sector)
        assert exc_info.value.side == side.value
        assert exc_info.value.sector_id == "0-1"


class TestValidate:

    def test_duplicate_ids(self, make_unit):
        a = make_unit(id="same")
        b = make_unit(id="same")
        with pytest.raises(CombatStateError):
            CombatantAssembler.validate([a, b])

    def test_health_out_of_range(self, make_unit):
        unit = make_unit()
        unit.health = 5
        with pytest.raises(CombatStateError):
            CombatantAssembler.validate([unit])

    def test_valid_units(self, make_unit):
        CombatantAssembler.validate([make_unit(), make_unit()])


class TestRefreshBaseStats:

    def test_lost_item_removes_bonus(self, arena):
        arena.add_rebel("kim", combat=1, initiative=3, items=["grenade"])
        arena.militia(dictator=1)
        rebels, _ = CombatantAssembler.build(arena.game, arena.sector)
        snap = rebels[0]
        assert snap.base_combat == 3
        assert snap.base_targets == 2

        snap.equipment.remove(snap.weapon)
        CombatantAssembler.refresh_base_stats(snap)

        assert snap.base_combat == 1
        assert snap.base_targets == 1
        assert snap.base_initiative == 3

    def test_militia_untouched(self, arena):
        militia = CombatantAssembler.militia_snapshot(Side.DICTATOR, "dictator", "0-1", 0)
        CombatantAssembler.refresh_base_stats(militia)
        assert militia.base_combat == 1
