"""
pytest 共享配置和 Fixtures
这个文件会被 pytest 自动加载，所有测试都可以使用这里定义的 fixtures
"""

import random
import sys
from pathlib import Path
from typing import Iterable, List, Sequence

import pytest

# 确保 merc_combat 包能被导入
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# ============================================================================
# 导入项目模块
# ============================================================================
from merc_combat.combat.engine import CombatEngine
from merc_combat.factory import CombatantAssembler
from merc_combat.models import (
    Combatant, CombatContext, EquipmentConfig, EquipmentType, Side, UnitConfig, UnitKind
)
from merc_combat.rules import AbilityRegistry, EquipmentEffectRegistry
from merc_combat.world import (
    DictatorPlayer, DictatorRecord, Equipment, Game, MercRecord, RebelPlayer, Sector, Squad
)


# ============================================================================
# 可控随机源
# ============================================================================

class ScriptedRandom(random.Random):
    """按脚本给出骰面的随机源，脚本耗尽后退回到带种子的正常随机"""

    def __init__(self, faces: Iterable[int] = (), seed: int = 0) -> None:
        super().__init__(seed)
        self.faces: List[int] = list(faces)
        self.drawn = 0

    def push(self, *faces: int) -> None:
        self.faces.extend(faces)

    def randint(self, a: int, b: int) -> int:
        if self.faces:
            self.drawn += 1
            return self.faces.pop(0)
        return super().randint(a, b)


# ============================================================================
# 装备目录
# ============================================================================

CATALOG = {
    "handgun": EquipmentConfig(id="9mm-handgun", name="9mm Handgun", type=EquipmentType.WEAPON, combat_bonus=1, serial=1),
    "uzi": EquipmentConfig(id="uzi", name="Uzi", type=EquipmentType.WEAPON, combat_bonus=1, targets=1, serial=3),
    "ap-rifle": EquipmentConfig(
        id="ak-47-with-ap-ammo", name="AK-47 with AP Ammo", type=EquipmentType.WEAPON,
        combat_bonus=2, negates_armor=True, serial=5
    ),
    "grenade": EquipmentConfig(
        id="grenade", name="Grenade", type=EquipmentType.WEAPON, combat_bonus=2, targets=1, is_one_use=True, serial=8
    ),
    "heavy-rifle": EquipmentConfig(id="m16", name="M16", type=EquipmentType.WEAPON, combat_bonus=2, initiative=-2, serial=4),
    "kevlar": EquipmentConfig(id="kevlar-vest", name="Kevlar Vest", type=EquipmentType.ARMOR, armor_bonus=1, serial=10),
    "body-armor": EquipmentConfig(id="body-armor", name="Body Armor", type=EquipmentType.ARMOR, armor_bonus=2, serial=11),
    "epinephrine": EquipmentConfig(id="epinephrine-shot", name="Epinephrine Shot", type=EquipmentType.ACCESSORY, serial=15),
    "land-mine": EquipmentConfig(id="land-mine", name="Land Mine", type=EquipmentType.ACCESSORY, serial=16),
    "attack-dog": EquipmentConfig(id="attack-dog", name="Attack Dog", type=EquipmentType.ACCESSORY, serial=17),
    "repair-kit": EquipmentConfig(id="repair-kit", name="Repair Kit", type=EquipmentType.ACCESSORY, serial=18),
    "medical-kit": EquipmentConfig(id="medical-kit", name="Medical Kit", type=EquipmentType.ACCESSORY, serial=13),
    "radio": EquipmentConfig(id="field-radio", name="Field Radio", type=EquipmentType.ACCESSORY, serial=20),
}


# ============================================================================
# 测试战场
# ============================================================================

class Arena:
    """测试用战场: 1x3 地图，战斗发生在中间区域 0-1

    反抗军玩家 p1 的主小队与独裁者小队都位于 0-1，独裁者基地在 0-2 且未暴露。
    """

    def __init__(self, faces: Sequence[int] = (), seed: int = 0, rows: int = 1, cols: int = 3) -> None:
        self.rng = ScriptedRandom(faces, seed)
        self.player = RebelPlayer(
            id="p1", name="Rebel One",
            primary_squad=Squad(id="p1-primary", owner_id="p1", sector_id="0-1"),
            secondary_squad=Squad(id="p1-secondary", owner_id="p1"),
        )
        self.dictator = DictatorPlayer(
            squad=Squad(id="dictator-squad", owner_id="dictator", sector_id="0-1"),
            dictator=DictatorRecord(config=UnitConfig(id="castro", name="Castro", combat=3, initiative=2)),
            base_sector_id="0-2",
        )
        sectors = [Sector(id=f"{r}-{c}", row=r, col=c) for r in range(rows) for c in range(cols)]
        self.game = Game(sectors, [self.player], self.dictator, rng=self.rng)
        self.sector = self.game.get_sector("0-1")

    def merc(
        self,
        unit_id: str,
        combat: int = 1,
        initiative: int = 1,
        training: int = 1,
        health: int = 3,
        items: Sequence[str] = (),
        extra_health: int = 0
    ) -> MercRecord:
        record = MercRecord(
            config=UnitConfig(
                id=unit_id, name=unit_id.title(), combat=combat,
                initiative=initiative, training=training, health=health
            ),
            extra_health=extra_health,
        )
        for key in items:
            record.equip(self.item(key))
        return record

    def item(self, key: str):
        return self.game.new_equipment(CATALOG[key])

    def add_rebel(self, unit_id: str, squad: str = "primary", **kwargs) -> MercRecord:
        record = self.merc(unit_id, **kwargs)
        getattr(self.player, f"{squad}_squad").mercs.append(record)
        return record

    def add_dictator_merc(self, unit_id: str, **kwargs) -> MercRecord:
        record = self.merc(unit_id, **kwargs)
        self.dictator.squad.mercs.append(record)
        return record

    def reveal_dictator(self) -> DictatorRecord:
        self.dictator.base_revealed = True
        self.dictator.base_sector_id = self.sector.id
        return self.dictator.dictator

    def militia(self, rebel: int = 0, dictator: int = 0) -> None:
        self.sector.rebel_militia["p1"] = rebel
        self.sector.dictator_militia = dictator

    def engine(self, **kwargs) -> CombatEngine:
        return CombatEngine(self.game, self.sector, self.player, **kwargs)

    def context(self, round_number: int = 1) -> CombatContext:
        rebels, dictator_side = CombatantAssembler.build(self.game, self.sector, self.player)
        return CombatContext(round_number=round_number, rebels=rebels, dictator_side=dictator_side)


# ============================================================================
# 基础 Fixtures
# ============================================================================

@pytest.fixture
def arena():
    """空战场 (骰面脚本为空，按需 push)"""
    return Arena()


@pytest.fixture
def catalog():
    return CATALOG


@pytest.fixture
def abilities():
    """包内自带能力表"""
    return AbilityRegistry.default()


@pytest.fixture
def equipment_registry():
    """包内自带装备效果表"""
    return EquipmentEffectRegistry.default()


@pytest.fixture
def make_unit():
    """直接构造参战快照 (不经过装配器)"""
    counter = {"n": 0}

    def _make(
        unit_id: str = "kim",
        kind: UnitKind = UnitKind.MERC,
        side: Side = Side.REBEL,
        combat: int = 1,
        initiative: int = 1,
        targets: int = 1,
        health: int = 3,
        armor: int = 0,
        squad_id: str | None = "s1",
        equipment: Sequence = (),
        owner_id: str | None = None,
        id: str | None = None
    ) -> Combatant:
        counter["n"] += 1
        is_militia = kind == UnitKind.MILITIA
        return Combatant(
            id=id or f"{unit_id}-{counter['n']}",
            name=unit_id.title(),
            kind=kind,
            side=side,
            owner_id=owner_id or ("p1" if side == Side.REBEL else "dictator"),
            unit_id="militia" if is_militia else unit_id,
            sector_id="0-1",
            squad_id=None if is_militia else squad_id,
            base_combat=combat,
            base_initiative=initiative,
            base_targets=targets,
            max_health=health,
            health=health,
            armor=armor,
            equipment=list(equipment),
        )

    return _make


@pytest.fixture
def make_context():
    def _make(rebels: Sequence[Combatant] = (), dictator_side: Sequence[Combatant] = (), round_number: int = 1):
        return CombatContext(round_number=round_number, rebels=list(rebels), dictator_side=list(dictator_side))

    return _make


@pytest.fixture
def make_arena():
    """按骰面脚本与种子创建战场"""
    return Arena


@pytest.fixture
def make_item():
    """不经过游戏直接创建装备实例"""
    counter = {"n": 0}

    def _make(key: str) -> Equipment:
        counter["n"] += 1
        config = CATALOG[key]
        return Equipment(config=config, instance_id=f"{config.id}#t{counter['n']}")

    return _make
