"""
地图与单位记录 (协作方模型)

战斗引擎只通过这里的接口读取区域占领情况，并在回写点修改持久化记录：
单位阵亡、撤退和战斗结束。
"""

import random
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from .config import Config
from .models import EquipmentConfig, EquipmentType, SectorType, UnitConfig


# ============================================================================
# 装备实例
# ============================================================================

@dataclass
class Equipment:
    """装备实例。同一时刻只属于一个单位槽位或一个区域物资箱。"""
    config: EquipmentConfig
    instance_id: str
    is_damaged: bool = False

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def type(self) -> EquipmentType:
        return self.config.type


# ============================================================================
# 单位记录
# ============================================================================

@dataclass
class MercRecord:
    """佣兵卡牌的持久化记录"""
    config: UnitConfig
    damage: int = 0
    is_dead: bool = False
    weapon: Optional[Equipment] = None
    armor: Optional[Equipment] = None
    accessory: Optional[Equipment] = None
    bandolier: List[Equipment] = field(default_factory=list)
    extra_health: int = 0

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def equipment(self) -> List[Equipment]:
        """按槽位顺序列出所有装备: 武器、护甲、配件、弹药带"""
        slots = [self.weapon, self.armor, self.accessory]
        return [eq for eq in slots if eq is not None] + list(self.bandolier)

    def _equipment_bonus(self, attr: str) -> int:
        return sum(getattr(eq.config, attr) for eq in self.equipment)

    @property
    def combat(self) -> int:
        return max(0, self.config.combat + self._equipment_bonus("combat_bonus"))

    @property
    def initiative(self) -> int:
        return self.config.initiative + self._equipment_bonus("initiative")

    @property
    def training(self) -> int:
        return self.config.training + self._equipment_bonus("training")

    @property
    def targets(self) -> int:
        return self.config.targets + self._equipment_bonus("targets")

    @property
    def equipment_armor(self) -> int:
        return self._equipment_bonus("armor_bonus")

    @property
    def max_health(self) -> int:
        return self.config.health + self.extra_health

    @property
    def health(self) -> int:
        return max(0, self.max_health - self.damage)

    def equip(self, item: Equipment) -> Optional[Equipment]:
        """装备到对应槽位，返回被替换下来的装备"""
        match item.type:
            case EquipmentType.WEAPON:
                replaced, self.weapon = self.weapon, item
            case EquipmentType.ARMOR:
                replaced, self.armor = self.armor, item
            case _:
                if self.accessory is None:
                    replaced, self.accessory = None, item
                else:
                    self.bandolier.append(item)
                    replaced = None
        return replaced

    def unequip(self, item: Equipment) -> bool:
        """移除指定装备实例，不存在时返回 False"""
        for slot in ("weapon", "armor", "accessory"):
            if getattr(self, slot) is item:
                setattr(self, slot, None)
                return True
        if item in self.bandolier:
            self.bandolier.remove(item)
            return True
        return False

    def unequip_all(self) -> List[Equipment]:
        items = self.equipment
        self.weapon = self.armor = self.accessory = None
        self.bandolier = []
        return items


@dataclass
class DictatorRecord(MercRecord):
    """独裁者卡牌记录"""
    in_play: bool = True


@dataclass
class Squad:
    """小队: 一组位于同一区域的佣兵"""
    id: str
    owner_id: str
    sector_id: Optional[str] = None
    mercs: List[MercRecord] = field(default_factory=list)

    @property
    def living_mercs(self) -> List[MercRecord]:
        return [m for m in self.mercs if not m.is_dead]


@dataclass
class RebelPlayer:
    """反抗军玩家"""
    id: str
    name: str = ""
    primary_squad: Optional[Squad] = None
    secondary_squad: Optional[Squad] = None

    @property
    def squads(self) -> List[Squad]:
        return [s for s in (self.primary_squad, self.secondary_squad) if s is not None]

    @property
    def mercs(self) -> List[MercRecord]:
        return [m for squad in self.squads for m in squad.mercs]


@dataclass
class DictatorPlayer:
    """独裁者玩家"""
    id: str = "dictator"
    squad: Optional[Squad] = None
    dictator: Optional[DictatorRecord] = None
    base_sector_id: Optional[str] = None
    base_revealed: bool = False


# ============================================================================
# 区域
# ============================================================================

@dataclass
class Sector:
    """地图区域"""
    id: str
    row: int
    col: int
    sector_type: SectorType = SectorType.WILDERNESS
    value: int = 0
    dictator_militia: int = 0
    rebel_militia: Dict[str, int] = field(default_factory=dict)
    stash: List[Equipment] = field(default_factory=list)
    explored: bool = False

    @property
    def is_city(self) -> bool:
        return self.sector_type == SectorType.CITY

    @property
    def is_industry(self) -> bool:
        return self.sector_type == SectorType.INDUSTRY

    def get_rebel_militia(self, player_id: str) -> int:
        return self.rebel_militia.get(player_id, 0)

    def total_rebel_militia(self) -> int:
        return sum(self.rebel_militia.values())

    def add_dictator_militia(self, count: int) -> int:
        """增加独裁者民兵，受上限约束，返回实际增加数量"""
        added = max(0, min(count, Config.MAX_MILITIA_PER_SECTOR - self.dictator_militia))
        self.dictator_militia += added
        return added

    def remove_dictator_militia(self, count: int) -> int:
        removed = min(count, self.dictator_militia)
        self.dictator_militia -= removed
        return removed

    def add_rebel_militia(self, player_id: str, count: int) -> int:
        current = self.get_rebel_militia(player_id)
        added = max(0, min(count, Config.MAX_MILITIA_PER_SECTOR - current))
        self.rebel_militia[player_id] = current + added
        return added

    def remove_rebel_militia(self, player_id: str, count: int) -> int:
        current = self.get_rebel_militia(player_id)
        removed = min(count, current)
        self.rebel_militia[player_id] = current - removed
        return removed


# ============================================================================
# 游戏 (地图 + 玩家 + 随机源)
# ============================================================================

class Game:
    """游戏状态容器

    持有唯一的带种子随机源，战斗引擎和 AI 辅助函数都从这里取随机数。
    """

    def __init__(
        self,
        sectors: List[Sector],
        rebels: List[RebelPlayer],
        dictator: DictatorPlayer,
        seed: int | None = None,
        rng: random.Random | None = None
    ) -> None:
        self.sectors: Dict[str, Sector] = {s.id: s for s in sectors}
        self.rebels: List[RebelPlayer] = rebels
        self.dictator: DictatorPlayer = dictator
        self.rng: random.Random = rng if rng is not None else random.Random(seed)
        self.discard: List[Equipment] = []
        self.merc_discard: List[MercRecord] = []
        self.combat_locked: set[str] = set()
        self._equipment_serial: int = 0

    @classmethod
    def from_grid(
        cls,
        rows: int,
        cols: int,
        rebels: List[RebelPlayer] | None = None,
        dictator: DictatorPlayer | None = None,
        seed: int | None = None
    ) -> "Game":
        """按行列生成荒野网格地图，区域 id 为 "row-col" """
        sectors = [Sector(id=f"{r}-{c}", row=r, col=c) for r in range(rows) for c in range(cols)]
        return cls(sectors, rebels or [], dictator or DictatorPlayer(), seed=seed)

    # ------------------------------------------------------------------ #
    #  查询                                                               #
    # ------------------------------------------------------------------ #

    def get_sector(self, sector_id: str) -> Sector:
        if sector_id not in self.sectors:
            raise KeyError(f"区域不存在: {sector_id}")
        return self.sectors[sector_id]

    def iter_sectors(self) -> Iterator[Sector]:
        return iter(self.sectors.values())

    def adjacent_sectors(self, sector: Sector) -> List[Sector]:
        """正交相邻的区域 (上下左右)"""
        neighbours = []
        for other in self.sectors.values():
            if abs(other.row - sector.row) + abs(other.col - sector.col) == 1:
                neighbours.append(other)
        return neighbours

    def get_player(self, player_id: str) -> RebelPlayer:
        for player in self.rebels:
            if player.id == player_id:
                return player
        raise KeyError(f"玩家不存在: {player_id}")

    def rebel_squads_in(self, sector: Sector, player: RebelPlayer | None = None) -> List[Squad]:
        players = [player] if player is not None else self.rebels
        return [s for p in players for s in p.squads if s.sector_id == sector.id]

    def rebel_mercs_in(self, sector: Sector, player: RebelPlayer | None = None) -> List[MercRecord]:
        return [m for squad in self.rebel_squads_in(sector, player) for m in squad.living_mercs]

    def dictator_mercs_in(self, sector: Sector) -> List[MercRecord]:
        squad = self.dictator.squad
        if squad is None or squad.sector_id != sector.id:
            return []
        return squad.living_mercs

    def dictator_card_in(self, sector: Sector) -> Optional[DictatorRecord]:
        """基地已暴露且位于该区域时返回独裁者本人"""
        d = self.dictator
        card = d.dictator
        if card is None or card.is_dead or not card.in_play:
            return None
        if d.base_revealed and d.base_sector_id == sector.id:
            return card
        return None

    def rebel_unit_count(self, sector: Sector, player: RebelPlayer | None = None) -> int:
        militia = sector.get_rebel_militia(player.id) if player else sector.total_rebel_militia()
        return len(self.rebel_mercs_in(sector, player)) + militia

    def dictator_unit_count(self, sector: Sector) -> int:
        card = 1 if self.dictator_card_in(sector) else 0
        return sector.dictator_militia + len(self.dictator_mercs_in(sector)) + card

    def has_rebel_forces(self, sector: Sector) -> bool:
        return self.rebel_unit_count(sector) > 0

    def has_dictator_forces(self, sector: Sector) -> bool:
        return self.dictator_unit_count(sector) > 0

    def is_rebel_controlled(self, sector: Sector) -> bool:
        """反抗军单位数严格多于独裁者单位数"""
        return self.rebel_unit_count(sector) > self.dictator_unit_count(sector)

    def is_dictator_controlled(self, sector: Sector) -> bool:
        return self.dictator_unit_count(sector) > self.rebel_unit_count(sector)

    # ------------------------------------------------------------------ #
    #  修改                                                               #
    # ------------------------------------------------------------------ #

    def new_equipment(self, config: EquipmentConfig) -> Equipment:
        """创建装备实例，实例 id 在本局游戏内唯一"""
        self._equipment_serial += 1
        return Equipment(config=config, instance_id=f"{config.id}#{self._equipment_serial}")

    def discard_equipment(self, item: Equipment) -> None:
        self.discard.append(item)
