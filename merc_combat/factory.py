"""
参战单位工厂 (Combatant Assembler)
负责把区域中的持久化单位记录聚合为战斗快照 (Combatant)。

只读: 装配过程不修改任何地图或单位记录。
"""

import logging
from typing import Iterable, List, Tuple

from .config import Config
from .errors import CombatStateError, EmptySideError
from .models import Combatant, Side, UnitKind
from .world import Game, MercRecord, RebelPlayer, Sector

logger = logging.getLogger(__name__)


class CombatantAssembler:
    """参战单位装配器"""

    @staticmethod
    def merc_snapshot(
        record: MercRecord,
        side: Side,
        owner_id: str,
        sector_id: str,
        squad_id: str | None = None,
        kind: UnitKind = UnitKind.MERC
    ) -> Combatant:
        """生成佣兵 (或独裁者本人) 的战斗快照。

        基础属性已包含装备加成，能力修正留给注册表在查询时折叠。
        """
        return Combatant(
            id=record.id,
            name=record.name,
            kind=kind,
            side=side,
            owner_id=owner_id,
            unit_id=record.id,
            sector_id=sector_id,
            squad_id=squad_id,
            base_combat=record.combat,
            base_initiative=record.initiative,
            base_training=record.training,
            base_targets=record.targets,
            max_health=record.max_health,
            health=record.health,
            armor=record.equipment_armor,
            equipment=list(record.equipment),
            source=record,
        )

    @staticmethod
    def refresh_base_stats(unit: Combatant) -> None:
        """按快照当前携带的装备重新计算基础属性 (装备被消耗或摧毁之后)"""
        record = unit.source
        if not unit.is_merc_like or not isinstance(record, MercRecord):
            return
        config = record.config
        items = [eq.config for eq in unit.equipment]
        unit.base_combat = max(0, config.combat + sum(eq.combat_bonus for eq in items))
        unit.base_initiative = config.initiative + sum(eq.initiative for eq in items)
        unit.base_training = config.training + sum(eq.training for eq in items)
        unit.base_targets = config.targets + sum(eq.targets for eq in items)

    @staticmethod
    def militia_snapshot(side: Side, owner_id: str, sector_id: str, index: int) -> Combatant:
        """生成民兵快照 (民兵属性固定)"""
        return Combatant(
            id=f"militia-{owner_id}-{index}",
            name="Militia",
            kind=UnitKind.MILITIA,
            side=side,
            owner_id=owner_id,
            unit_id="militia",
            sector_id=sector_id,
            base_combat=Config.MILITIA_COMBAT,
            base_initiative=Config.MILITIA_INITIATIVE,
            base_targets=Config.MILITIA_TARGETS,
            max_health=Config.MILITIA_HEALTH,
            health=Config.MILITIA_HEALTH,
            armor=Config.MILITIA_ARMOR,
        )

    @staticmethod
    def dog_snapshot(owner: Combatant, item, health: int) -> Combatant:
        """攻击犬: 加入主人一方，不进行攻击"""
        return Combatant(
            id=f"dog-{item.instance_id}",
            name="Attack Dog",
            kind=UnitKind.ATTACK_DOG,
            side=owner.side,
            owner_id=owner.owner_id,
            unit_id=item.id,
            sector_id=owner.sector_id,
            squad_id=owner.squad_id,
            base_combat=0,
            base_initiative=0,
            base_targets=0,
            max_health=health,
            health=health,
            source=item,
        )

    @classmethod
    def build_rebels(cls, game: Game, sector: Sector) -> List[Combatant]:
        """区域内所有反抗军玩家的存活佣兵与民兵 (佣兵在前)"""
        units: List[Combatant] = []
        for player in game.rebels:
            for squad in game.rebel_squads_in(sector, player):
                for merc in squad.living_mercs:
                    units.append(cls.merc_snapshot(merc, Side.REBEL, player.id, sector.id, squad.id))
        for player in game.rebels:
            for i in range(sector.get_rebel_militia(player.id)):
                units.append(cls.militia_snapshot(Side.REBEL, player.id, sector.id, i))
        return units

    @classmethod
    def build_dictator_side(cls, game: Game, sector: Sector) -> List[Combatant]:
        """独裁者民兵、独裁者佣兵以及 (基地已暴露时) 独裁者本人"""
        owner_id = game.dictator.id
        units = [
            cls.militia_snapshot(Side.DICTATOR, owner_id, sector.id, i)
            for i in range(sector.dictator_militia)
        ]
        squad = game.dictator.squad
        for merc in game.dictator_mercs_in(sector):
            units.append(cls.merc_snapshot(merc, Side.DICTATOR, owner_id, sector.id, squad.id if squad else None))
        card = game.dictator_card_in(sector)
        if card is not None:
            units.append(cls.merc_snapshot(card, Side.DICTATOR, owner_id, sector.id, kind=UnitKind.DICTATOR))
        return units

    @classmethod
    def build(
        cls,
        game: Game,
        sector: Sector,
        attacking_player: RebelPlayer | None = None
    ) -> Tuple[List[Combatant], List[Combatant]]:
        """装配双方参战单位。

        Args:
            game: 游戏状态
            sector: 战斗发生的区域
            attacking_player: 发起战斗的玩家 (仅用于日志)

        Returns:
            (反抗军单位列表, 独裁者方单位列表)

        Raises:
            EmptySideError: 任意一方没有可参战单位
        """
        rebels = cls.build_rebels(game, sector)
        dictator_side = cls.build_dictator_side(game, sector)
        if not rebels:
            raise EmptySideError(Side.REBEL.value, sector.id)
        if not dictator_side:
            raise EmptySideError(Side.DICTATOR.value, sector.id)
        logger.debug(
            "区域 %s 装配完成 (发起方 %s): 反抗军 %d, 独裁者 %d",
            sector.id, attacking_player.id if attacking_player else "-", len(rebels), len(dictator_side)
        )
        return rebels, dictator_side

    @staticmethod
    def validate(units: Iterable[Combatant]) -> None:
        """快照不变量检查，违反时抛出 CombatStateError"""
        seen: set[str] = set()
        for unit in units:
            if unit.id in seen:
                raise CombatStateError(f"单位 id 重复: {unit.id}")
            seen.add(unit.id)
            if unit.health < 0 or unit.health > unit.max_health:
                raise CombatStateError(f"单位 {unit.id} 生命值非法: {unit.health}/{unit.max_health}")
            if unit.armor < 0 or unit.base_combat < 0 or unit.base_targets < 0:
                raise CombatStateError(f"单位 {unit.id} 属性非法")
