"""
能力修正注册表
负责按单位 id 查询特殊能力，并把所有生效的修正折叠成最终属性值

折叠顺序 (固定):
1. 装备门控 (无视先手惩罚 / 不使用爆炸物 / 需要配件)
2. 单位自身的加法修正
3. 队友与己方能力带来的加法修正 (小队光环、民兵先手加成)
4. 敌方减益
5. 乘法修正 (mul / div)
6. 覆盖修正 (set / min / max)
7. 下限裁剪
"""

import logging
from importlib import resources
from typing import Any, ClassVar, Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple

import yaml

from ..config import Config
from ..errors import CombatStateError
from ..models import (
    AbilityDefinition, BehaviorFlag, Combatant, CombatContext,
    ModifierScope, Stat, StatModifier
)
from .conditions import ConditionChecker, is_known_condition
from .equipment import EquipmentEffectRegistry

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "abilities.yaml"

# 被动数值中会转化为属性修正的部分
_PASSIVE_MODIFIERS: Dict[str, Tuple[Stat, ModifierScope]] = {
    "extra_combat": (Stat.COMBAT, ModifierScope.SELF),
    "militia_initiative_bonus": (Stat.INITIATIVE, ModifierScope.FRIENDLY_MILITIA),
}

# 装备配置中对应各属性的加成字段
_EQUIPMENT_BONUS_FIELD: Dict[Stat, str] = {
    Stat.COMBAT: "combat_bonus",
    Stat.INITIATIVE: "initiative",
    Stat.TRAINING: "training",
    Stat.TARGETS: "targets",
}

_NON_NEGATIVE = {Stat.COMBAT, Stat.TRAINING, Stat.TARGETS, Stat.ARMOR, Stat.HEALTH}


def _apply_numeric_operation(current_value: float, op: str, val: float) -> float | None:
    """应用数值运算操作。

    Args:
        current_value: 当前值
        op: 操作类型
        val: 操作值

    Returns:
        运算后的新值，若操作不匹配则返回 None
    """
    match op:
        case "add": return current_value + val
        case "sub": return current_value - val
        case "mul": return current_value * val
        case "div": return current_value / val if val != 0 else current_value
        case "set": return val
        case "min": return min(current_value, val)
        case "max": return max(current_value, val)
        case _: return None


def _unit_id(unit: Any) -> str:
    return unit if isinstance(unit, str) else unit.unit_id


class AbilityRegistry:
    """能力修正注册表 (构建后只读)"""

    _default: ClassVar[Optional["AbilityRegistry"]] = None

    def __init__(
        self,
        table: Mapping[str, Any],
        equipment: EquipmentEffectRegistry | None = None
    ) -> None:
        """
        Args:
            table: 单位 id -> 能力字段字典 (或 AbilityDefinition)
            equipment: 条件判断使用的装备效果表，默认使用包内自带表
        """
        self.equipment: EquipmentEffectRegistry = equipment or EquipmentEffectRegistry.default()
        self._abilities: Mapping[str, AbilityDefinition] = {
            unit_id: self._build_definition(unit_id, raw) for unit_id, raw in table.items()
        }
        self._female: FrozenSet[str] = frozenset(
            unit_id for unit_id, ability in self._abilities.items() if ability.female
        )

    @staticmethod
    def _build_definition(unit_id: str, raw: Any) -> AbilityDefinition:
        """校验条件名称，补齐修正来源，并把被动数值展开为修正"""
        if isinstance(raw, AbilityDefinition):
            data = raw.model_dump()
        else:
            data = dict(raw or {})
        data["unit_id"] = unit_id

        modifiers = [StatModifier.model_validate(m) for m in data.get("modifiers", [])]
        for name, value in (data.get("passives") or {}).items():
            if name in _PASSIVE_MODIFIERS:
                stat, scope = _PASSIVE_MODIFIERS[name]
                modifiers.append(StatModifier(stat=stat, value=value, scope=scope))
        data["modifiers"] = [m.model_copy(update={"source": unit_id}) for m in modifiers]

        ability = AbilityDefinition.model_validate(data)
        conditions = [m.condition for m in ability.modifiers] + [b.condition for b in ability.behaviors]
        for name in conditions:
            if not is_known_condition(name):
                raise ValueError(f"能力 {unit_id} 引用了未知条件: {name}")
        return ability

    @classmethod
    def from_yaml(cls, text: str, equipment: EquipmentEffectRegistry | None = None) -> "AbilityRegistry":
        return cls(yaml.safe_load(text) or {}, equipment)

    @classmethod
    def default(cls) -> "AbilityRegistry":
        """包内自带的能力表 (首次使用时加载)"""
        if cls._default is None:
            text = resources.files("merc_combat.data").joinpath(DEFAULT_TABLE).read_text(encoding="utf-8")
            cls._default = cls.from_yaml(text)
            logger.debug("能力表已加载: %d 项", len(cls._default._abilities))
        return cls._default

    # ===== 静态查询 =====

    def get(self, unit: Any) -> Optional[AbilityDefinition]:
        """查询单位的能力定义，未知单位返回 None"""
        return self._abilities.get(_unit_id(unit))

    def is_female(self, unit: Any) -> bool:
        return _unit_id(unit) in self._female

    def female_unit_ids(self) -> FrozenSet[str]:
        return self._female

    def are_incompatible(self, unit_a: Any, unit_b: Any) -> bool:
        """两名佣兵是否互斥 (任意一方声明即生效)"""
        a, b = _unit_id(unit_a), _unit_id(unit_b)
        ability_a, ability_b = self.get(a), self.get(b)
        return bool(
            (ability_a and b in ability_a.incompatible_with)
            or (ability_b and a in ability_b.incompatible_with)
        )

    def get_passive(self, unit: Any, name: str) -> int:
        ability = self.get(unit)
        return ability.passives.get(name, 0) if ability else 0

    def extra_health(self, unit: Any) -> int:
        return self.get_passive(unit, "extra_health")

    def extra_actions(self, unit: Any) -> int:
        return self.get_passive(unit, "extra_actions")

    def extra_training_actions(self, unit: Any) -> int:
        return self.get_passive(unit, "extra_training_actions")

    def brings_militia(self, unit: Any) -> int:
        return self.get_passive(unit, "brings_militia")

    def auto_heal_per_day(self, unit: Any) -> int:
        return self.get_passive(unit, "auto_heal_per_day")

    def extra_combat(self, unit: Any) -> int:
        return self.get_passive(unit, "extra_combat")

    def militia_initiative_bonus(self, unit: Any) -> int:
        return self.get_passive(unit, "militia_initiative_bonus")

    # ===== 上下文查询 =====

    def has_behavior(self, unit: Combatant, flag: BehaviorFlag, context: CombatContext | None = None) -> bool:
        """单位在当前上下文中是否拥有某项布尔能力"""
        ability = self.get(unit)
        if ability is None:
            return False
        context = context or CombatContext(round_number=1)
        return any(
            entry.flag == flag and ConditionChecker.check(entry.condition, unit, context, self)
            for entry in ability.behaviors
        )

    def hit_threshold(self, unit: Combatant) -> int:
        """命中阈值: 能力覆盖优先，其次武器覆盖，最后默认值"""
        ability = self.get(unit)
        if ability and ability.hit_threshold is not None:
            return ability.hit_threshold
        weapon = getattr(unit, "weapon", None)
        if weapon is not None:
            override = self.equipment.get_hit_threshold(weapon)
            if override is not None:
                return override
        return Config.HIT_THRESHOLD

    def applicable_modifiers(self, stat: Stat, unit: Combatant, context: CombatContext) -> List[StatModifier]:
        """按折叠顺序列出当前生效的修正 (自身 -> 己方 -> 敌方)"""
        return list(self._iter_modifiers(stat, unit, context))

    def _iter_modifiers(self, stat: Stat, unit: Combatant, context: CombatContext) -> Iterator[StatModifier]:
        # 1. 自身
        own = self.get(unit)
        if own is not None:
            for m in own.modifiers:
                if m.stat == stat and m.scope == ModifierScope.SELF and self._passes(m, unit, context, stat):
                    yield m

        # 2. 己方 (包括自身的 all_squad 光环)
        holders = [unit] + context.allies_of(unit)
        for holder in holders:
            ability = self.get(holder)
            if ability is None:
                continue
            for m in ability.modifiers:
                if m.stat != stat or not self._ally_scope_applies(m.scope, holder, unit):
                    continue
                if self._passes(m, holder, context, stat):
                    yield m

        # 3. 敌方减益
        if unit.is_merc_like:
            for enemy in context.enemies_of(unit):
                ability = self.get(enemy)
                if ability is None:
                    continue
                for m in ability.modifiers:
                    if m.stat == stat and m.scope == ModifierScope.ENEMY_MERCS and self._passes(m, enemy, context, stat):
                        yield m

    @staticmethod
    def _ally_scope_applies(scope: ModifierScope, holder: Combatant, unit: Combatant) -> bool:
        match scope:
            case ModifierScope.SQUAD_MATES:
                return (holder.id != unit.id and unit.is_merc_like
                        and unit.squad_id is not None and holder.squad_id == unit.squad_id)
            case ModifierScope.ALL_SQUAD:
                return unit.is_merc_like and (
                    holder.id == unit.id
                    or (unit.squad_id is not None and holder.squad_id == unit.squad_id)
                )
            case ModifierScope.FRIENDLY_MILITIA:
                return unit.is_militia and holder.side == unit.side
            case _:
                return False

    def _passes(self, modifier: StatModifier, holder: Combatant, context: CombatContext, stat: Stat) -> bool:
        return ConditionChecker.check(modifier.condition, holder, context, self, stat)

    def _base_value(self, stat: Stat, unit: Combatant, context: CombatContext) -> float:
        match stat:
            case Stat.COMBAT:
                value = unit.base_combat
            case Stat.INITIATIVE:
                if unit.rolled_initiative is not None:
                    return unit.rolled_initiative
                value = unit.base_initiative
            case Stat.TRAINING:
                value = unit.base_training
            case Stat.TARGETS:
                value = unit.base_targets
            case Stat.ARMOR:
                return unit.armor
            case Stat.HEALTH:
                return unit.health
            case _:
                raise CombatStateError(f"未知属性: {stat}")

        bonus_field = _EQUIPMENT_BONUS_FIELD[stat]
        if stat == Stat.INITIATIVE and self.has_behavior(unit, BehaviorFlag.IGNORES_INITIATIVE_PENALTIES, context):
            value -= sum(min(0, eq.config.initiative) for eq in unit.equipment)
        if self.has_behavior(unit, BehaviorFlag.WONT_USE_EXPLOSIVES, context):
            value -= sum(
                getattr(eq.config, bonus_field) for eq in unit.equipment
                if self.equipment.is_explosive(eq)
            )
        return value

    def effective_value(self, stat: Stat, unit: Combatant, context: CombatContext) -> int:
        """计算单位在当前上下文中的最终属性值。

        修正只作用于本次计算的派生值，不修改快照或注册表。

        Args:
            stat: 要计算的属性
            unit: 参战单位快照
            context: 战斗上下文

        Returns:
            折叠全部修正后的整数值
        """
        if not isinstance(stat, Stat):
            raise CombatStateError(f"未知属性: {stat}")
        if (stat == Stat.COMBAT
                and self.has_behavior(unit, BehaviorFlag.REQUIRES_ACCESSORY, context)
                and not unit.accessories):
            return 0

        value = self._base_value(stat, unit, context)
        modifiers = self.applicable_modifiers(stat, unit, context)

        for m in modifiers:
            if m.op in ("add", "sub"):
                value = _apply_numeric_operation(value, m.op, m.value)
        for m in modifiers:
            if m.is_multiplicative:
                value = _apply_numeric_operation(value, m.op, m.value)
        for m in modifiers:
            if m.op in ("set", "min", "max"):
                value = _apply_numeric_operation(value, m.op, m.value)

        result = int(value)
        if stat in _NON_NEGATIVE:
            result = max(0, result)
        return result
