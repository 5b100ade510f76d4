"""
目标选择与命中分配
负责合法目标过滤、强制目标策略以及把命中数分配给目标
"""

from typing import List, Sequence, Tuple

from ..ai.combat_helpers import sort_targets_by_ai_priority
from ..errors import InvalidTargetError
from ..models import BehaviorFlag, Combatant, CombatContext, Stat
from ..rules.abilities import AbilityRegistry
from .calculator import CombatCalculator

Allocation = List[Tuple[Combatant, int]]


class TargetSelector:
    """目标选择器"""

    def __init__(self, abilities: AbilityRegistry) -> None:
        self.abilities = abilities

    # ===== 合法目标 =====

    def legal_targets(self, attacker: Combatant, context: CombatContext) -> List[Combatant]:
        """攻击方当前可以选择的敌方目标。

        - 不伤害犬只的单位不会以攻击犬为目标
        - 独裁者本人只有在其一方没有其他单位时才能被攻击
        """
        enemies = context.enemies_of(attacker)
        if self.abilities.has_behavior(attacker, BehaviorFlag.WILL_NOT_HARM_DOGS, context):
            enemies = [e for e in enemies if not e.is_dog]
        if any(e.is_dictator for e in enemies):
            guards = [e for e in enemies if not e.is_dictator and not e.is_dog]
            if guards:
                enemies = [e for e in enemies if not e.is_dictator]
        return enemies

    def max_targets(self, attacker: Combatant, context: CombatContext) -> int:
        return max(1, self.abilities.effective_value(Stat.TARGETS, attacker, context))

    def forced_dog(self, attacker: Combatant, context: CombatContext) -> Combatant | None:
        """缠住攻击方的攻击犬 (仍存活且攻击方会攻击犬只时)"""
        if attacker.assigned_dog_id is None:
            return None
        if self.abilities.has_behavior(attacker, BehaviorFlag.WILL_NOT_HARM_DOGS, context):
            return None
        dog = context.find(attacker.assigned_dog_id)
        return dog if dog is not None and dog.is_alive else None

    # ===== 强制策略 =====

    def apply_forced_order(
        self,
        attacker: Combatant,
        ordered: Sequence[Combatant],
        context: CombatContext
    ) -> List[Combatant]:
        """在 AI 优先级顺序之上套用能力强制的目标策略"""
        result = list(ordered)
        if self.abilities.has_behavior(attacker, BehaviorFlag.PRIORITIZE_MERCS, context):
            result = [t for t in result if t.is_merc_like] + [t for t in result if not t.is_merc_like]

        last = [t for t in result if self.abilities.has_behavior(t, BehaviorFlag.TARGETED_LAST, context)]
        if last:
            last_ids = {t.id for t in last}
            result = [t for t in result if t.id not in last_ids] + last

        dog = self.forced_dog(attacker, context)
        if dog is not None:
            result = [dog] + [t for t in result if t.id != dog.id]
        return result

    def ordered_candidates(self, attacker: Combatant, context: CombatContext) -> List[Combatant]:
        legal = self.legal_targets(attacker, context)
        ordered = sort_targets_by_ai_priority(attacker, legal, context, self.abilities)
        return self.apply_forced_order(attacker, ordered, context)

    def choose_targets(self, attacker: Combatant, context: CombatContext) -> List[Combatant]:
        """AI (或无选择余地时) 的目标列表"""
        return self.ordered_candidates(attacker, context)[:self.max_targets(attacker, context)]

    def needs_choice(self, attacker: Combatant, context: CombatContext) -> bool:
        """人工控制时是否需要玩家选择目标 (候选多于目标数且不受攻击犬强制)"""
        if self.forced_dog(attacker, context) is not None:
            return False
        return len(self.legal_targets(attacker, context)) > self.max_targets(attacker, context)

    def validate_choice(
        self,
        attacker: Combatant,
        target_ids: Sequence[str],
        context: CombatContext
    ) -> List[Combatant]:
        """校验玩家选择的目标，返回按强制策略排好序的目标列表"""
        legal = {t.id: t for t in self.legal_targets(attacker, context)}
        ids = list(target_ids)
        if not ids:
            raise InvalidTargetError("至少需要选择一个目标")
        if len(set(ids)) != len(ids):
            raise InvalidTargetError("目标不能重复")
        if len(ids) > self.max_targets(attacker, context):
            raise InvalidTargetError(f"最多只能选择 {self.max_targets(attacker, context)} 个目标")
        unknown = [i for i in ids if i not in legal]
        if unknown:
            raise InvalidTargetError(f"非法目标: {', '.join(unknown)}")

        chosen = [legal[i] for i in ids]
        last_ids = {
            t.id for t in legal.values()
            if self.abilities.has_behavior(t, BehaviorFlag.TARGETED_LAST, context)
        }
        if any(t.id in last_ids for t in chosen):
            others = [t for t in legal.values() if t.id not in last_ids]
            if any(t.id not in ids for t in others):
                raise InvalidTargetError("该单位只能在其他目标都被选择后才能被攻击")
        return self.apply_forced_order(attacker, chosen, context)

    # ===== 命中分配 =====

    def distribute_hits(
        self,
        attacker: Combatant,
        targets: Sequence[Combatant],
        hits: int,
        sixes: int,
        context: CombatContext,
        armor_piercing: bool = False
    ) -> Allocation:
        """把命中数依次分配给目标。

        每个目标最多分到击杀所需的命中数，多余命中顺延给下一个目标。
        - 每次命中换一名民兵: 已选目标之外的其他民兵也会依次承接命中
        - 6 点可转移: 分配结束后仍有剩余时，最多 sixes 个命中转给未被选中的合法目标

        Args:
            attacker: 攻击方
            targets: 已确定的目标 (按顺序)
            hits: 总命中数
            sixes: 掷出最大点数且命中的骰子数
            context: 战斗上下文
            armor_piercing: 是否无视护甲

        Returns:
            [(目标, 分到的命中数)]
        """
        chain = list(targets)
        chosen_ids = {t.id for t in chain}
        if self.abilities.has_behavior(attacker, BehaviorFlag.EACH_HIT_NEW_MILITIA_TARGET, context):
            extra = [
                t for t in self.ordered_candidates(attacker, context)
                if t.is_militia and t.id not in chosen_ids
            ]
            chain.extend(extra)
            chosen_ids.update(t.id for t in extra)

        allocation: Allocation = []
        remaining = hits
        for target in chain:
            if remaining <= 0:
                break
            assigned = min(remaining, CombatCalculator.hits_to_kill(target, armor_piercing))
            if assigned > 0:
                allocation.append((target, assigned))
                remaining -= assigned

        if remaining > 0 and sixes > 0 and self.abilities.has_behavior(
                attacker, BehaviorFlag.SIXES_CAN_RETARGET, context):
            redirect = min(remaining, sixes)
            for target in self.ordered_candidates(attacker, context):
                if redirect <= 0:
                    break
                if target.id in chosen_ids:
                    continue
                assigned = min(redirect, CombatCalculator.hits_to_kill(target, armor_piercing))
                if assigned > 0:
                    allocation.append((target, assigned))
                    redirect -= assigned
        return allocation
