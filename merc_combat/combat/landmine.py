"""
战前地雷结算

独裁者一方据守的区域物资箱中若有地雷，第一回合之前引爆:
每名进攻佣兵受到地雷伤害，每名进攻玩家损失 1 名民兵。
进攻方有排雷能力的佣兵在场时地雷被拆除。无论哪种情况地雷都被弃置。
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..models import BehaviorFlag, Combatant, CombatContext, DamageRecord
from ..rules.abilities import AbilityRegistry
from ..rules.equipment import EquipmentEffectRegistry
from ..world import Equipment, Sector
from .calculator import CombatCalculator

logger = logging.getLogger(__name__)


@dataclass
class LandMineOutcome:
    """地雷结算结果"""
    mine: Optional[Equipment] = None
    detonated: bool = False
    disarmed_by: Optional[str] = None
    damage: List[DamageRecord] = field(default_factory=list)

    @property
    def triggered(self) -> bool:
        return self.mine is not None


def find_land_mine(sector: Sector, equipment: EquipmentEffectRegistry) -> Optional[Equipment]:
    for item in sector.stash:
        if equipment.is_land_mine(item):
            return item
    return None


def detonate_land_mines(
    sector: Sector,
    attackers: Sequence[Combatant],
    defenders: Sequence[Combatant],
    context: CombatContext,
    abilities: AbilityRegistry,
    equipment: EquipmentEffectRegistry
) -> LandMineOutcome:
    """在进攻方快照上结算地雷。

    只修改快照 (生命值、护甲)，物资箱中的地雷在回写阶段移除。

    Args:
        sector: 战斗区域
        attackers: 进攻方 (反抗军) 单位
        defenders: 防守方单位，没有任何单位时地雷不触发
        context: 战斗上下文
        abilities: 能力注册表
        equipment: 装备效果注册表

    Returns:
        LandMineOutcome
    """
    if not any(d.is_alive and not d.is_dog for d in defenders):
        return LandMineOutcome()
    mine = find_land_mine(sector, equipment)
    if mine is None:
        return LandMineOutcome()

    for unit in attackers:
        if unit.is_alive and unit.is_merc_like and abilities.has_behavior(
                unit, BehaviorFlag.HANDLES_LAND_MINES, context):
            logger.debug("区域 %s 的地雷被 %s 拆除", sector.id, unit.id)
            return LandMineOutcome(mine=mine, disarmed_by=unit.id)

    outcome = LandMineOutcome(mine=mine, detonated=True)
    damage = equipment.get_mine_damage(mine)
    militia_hit: set[str] = set()
    for unit in attackers:
        if not unit.is_alive:
            continue
        if unit.is_merc_like:
            outcome.damage.append(CombatCalculator.apply_damage(unit, damage))
        elif unit.is_militia and unit.owner_id not in militia_hit:
            # 每名玩家只损失 1 名民兵
            militia_hit.add(unit.owner_id)
            outcome.damage.append(CombatCalculator.apply_damage(unit, unit.health))
    logger.debug("区域 %s 地雷引爆，波及 %d 个单位", sector.id, len(outcome.damage))
    return outcome
