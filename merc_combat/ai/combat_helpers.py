"""
AI 战斗决策辅助函数

全部为纯函数: 只读取战斗上下文，返回排序结果或 AIChoice / Defer，从不修改状态。
需要随机时只使用游戏持有的带种子随机源。
"""

import math
from dataclasses import dataclass
from typing import List, Sequence

from ..combat.calculator import CombatCalculator
from ..config import Config
from ..models import (
    AIChoice, AIDecision, BehaviorFlag, Combatant, CombatContext, DEFER, Stat
)
from ..rules.abilities import AbilityRegistry
from ..rules.equipment import EquipmentEffectRegistry


# ===== 目标优先级 =====

def threat_of(unit: Combatant, context: CombatContext, abilities: AbilityRegistry | None = None) -> float:
    """单位对敌方的威胁: 期望命中数 (攻击犬不攻击，威胁为 0)"""
    if unit.is_dog:
        return 0.0
    abilities = abilities or AbilityRegistry.default()
    dice = abilities.effective_value(Stat.COMBAT, unit, context)
    return CombatCalculator.expected_hits(dice, abilities.hit_threshold(unit))


def can_plausibly_kill(
    attacker: Combatant,
    target: Combatant,
    context: CombatContext,
    abilities: AbilityRegistry | None = None
) -> bool:
    """期望命中数 (向上取整) 是否足以在本次攻击中击杀目标"""
    abilities = abilities or AbilityRegistry.default()
    expected = math.ceil(threat_of(attacker, context, abilities))
    piercing = bool(attacker.weapon and attacker.weapon.config.negates_armor)
    return CombatCalculator.hits_to_kill(target, piercing) <= expected


def sort_targets_by_ai_priority(
    attacker: Combatant,
    candidates: Sequence[Combatant],
    context: CombatContext,
    abilities: AbilityRegistry | None = None
) -> List[Combatant]:
    """按固定策略为攻击方排列敌方目标。

    排序键 (依次比较):
    1. 本次攻击能否击杀目标 (能击杀的优先)
    2. 目标对攻击方的威胁 (高者优先)
    3. 目标当前生命值 (低者优先)
    4. 单位 id (保证确定性)

    Args:
        attacker: 攻击方
        candidates: 候选目标
        context: 战斗上下文
        abilities: 能力注册表

    Returns:
        排序后的新列表
    """
    abilities = abilities or AbilityRegistry.default()
    return sorted(
        candidates,
        key=lambda t: (
            0 if can_plausibly_kill(attacker, t, context, abilities) else 1,
            -threat_of(t, context, abilities),
            t.health,
            t.id,
        )
    )


# ===== 攻击犬 =====

def has_attack_dog_equipped(unit: Combatant, equipment: EquipmentEffectRegistry | None = None) -> bool:
    equipment = equipment or EquipmentEffectRegistry.default()
    return any(equipment.is_attack_dog(eq) for eq in unit.equipment)


def select_attack_dog_target(
    owner: Combatant,
    context: CombatContext,
    abilities: AbilityRegistry | None = None
) -> AIDecision:
    """为攻击犬选择要缠住的敌方佣兵。

    免疫攻击犬的单位只有在没有其他佣兵时才会被选中；已被其他犬缠住的佣兵不再重复选择。
    """
    abilities = abilities or AbilityRegistry.default()
    candidates = [
        e for e in context.enemies_of(owner)
        if e.is_merc_like and e.assigned_dog_id is None
    ]
    if not candidates:
        return DEFER
    eligible = [
        e for e in candidates
        if not abilities.has_behavior(e, BehaviorFlag.IMMUNE_TO_ATTACK_DOGS, context)
    ]
    ordered = sort_targets_by_ai_priority(owner, eligible or candidates, context, abilities)
    return AIChoice(ordered[0])


# ===== 肾上腺素 =====

def has_epinephrine_shot(
    units: Sequence[Combatant],
    equipment: EquipmentEffectRegistry | None = None
) -> AIDecision:
    """返回第一个携带肾上腺素的单位"""
    equipment = equipment or EquipmentEffectRegistry.default()
    for unit in units:
        if unit.is_dead:
            continue
        if any(equipment.is_epinephrine(eq) for eq in unit.equipment):
            return AIChoice(unit)
    return DEFER


def should_use_epinephrine(
    dying: Combatant,
    squad: Sequence[Combatant],
    equipment: EquipmentEffectRegistry | None = None
) -> AIDecision:
    """单位生命归零时，AI 总是使用小队中可用的肾上腺素"""
    if dying.health > 0 or dying.is_dead:
        return DEFER
    return has_epinephrine_shot([dying, *squad], equipment)


# ===== 骰子 =====

def should_reroll(rolls: Sequence[int], threshold: int = Config.HIT_THRESHOLD) -> bool:
    """命中比例低于阈值时重投"""
    if not rolls:
        return False
    hits = CombatCalculator.count_hits(rolls, threshold)
    return hits < len(rolls) * Config.AI_REROLL_HIT_RATIO


def choose_die_to_sacrifice(rolls: Sequence[int], threshold: int = Config.HIT_THRESHOLD) -> AIDecision:
    """选择一枚未命中的骰子用于治疗 (点数最低者)，全部命中时不牺牲"""
    misses = [(r, i) for i, r in enumerate(rolls) if r < threshold]
    if not misses:
        return DEFER
    return AIChoice(min(misses)[1])


# ===== 撤退 =====

def side_strength(units: Sequence[Combatant]) -> int:
    """剩余战力: 存活单位的生命值与护甲之和"""
    return sum(u.health + u.armor for u in units if u.is_alive)


def should_retreat(
    own: Sequence[Combatant],
    enemies: Sequence[Combatant],
    valid_sectors: Sequence,
) -> AIDecision:
    """己方战力低于敌方一定比例且存在可撤退区域时撤退到第一个合法区域"""
    if not valid_sectors:
        return DEFER
    if side_strength(own) < side_strength(enemies) * Config.AI_RETREAT_STRENGTH_RATIO:
        return AIChoice(valid_sectors[0])
    return DEFER


# ===== 战力评估 =====

@dataclass(frozen=True)
class CombatOdds:
    """战前双方战力 (战斗值 x 生命值之和)"""
    rebel_strength: int
    dictator_strength: int

    @property
    def advantage(self) -> int:
        return self.rebel_strength - self.dictator_strength


def odds_from_rosters(
    rebels: Sequence[Combatant],
    dictator_side: Sequence[Combatant],
    abilities: AbilityRegistry | None = None
) -> CombatOdds:
    abilities = abilities or AbilityRegistry.default()
    context = CombatContext(round_number=1, rebels=list(rebels), dictator_side=list(dictator_side))

    def strength(units: Sequence[Combatant]) -> int:
        return sum(abilities.effective_value(Stat.COMBAT, u, context) * u.health for u in units)

    return CombatOdds(rebel_strength=strength(rebels), dictator_strength=strength(dictator_side))
