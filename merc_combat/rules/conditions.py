"""
Condition Checker System
处理能力修正生效条件的检查逻辑

条件在每次查询时重新求值，不跨回合缓存。
"""

from typing import Any, Callable, Optional

from ..models import Combatant, CombatContext, Stat


def _card_stat(unit: Combatant, stat: Stat) -> int:
    """卡牌上的基础属性 (不含装备)，没有卡牌来源时退回快照基础值"""
    config = getattr(unit.source, "config", None)
    if config is not None and hasattr(config, stat.value):
        return getattr(config, stat.value)
    return getattr(unit, f"base_{stat.value}", 0)


def _weapon_category(unit: Combatant, registry: Any) -> Optional[str]:
    if unit.weapon is None:
        return None
    return registry.equipment.weapon_category(unit.weapon)


# ===== 回合与小队条件 =====

def _check_always(unit, context, registry, stat=None) -> bool:
    return True


def _check_first_round(unit, context, registry, stat=None) -> bool:
    return context.round_number == 1


def _check_highest_init_in_squad(unit, context, registry, stat=None) -> bool:
    """先手 (含装备、不含能力) 不低于任何队友"""
    return all(unit.base_initiative >= m.base_initiative for m in context.squad_mates(unit))


def _check_woman_in_squad(unit, context, registry, stat=None) -> bool:
    return any(registry.is_female(m.unit_id) for m in context.squad_mates(unit))


def _check_alone_in_squad(unit, context, registry, stat=None) -> bool:
    return not context.squad_mates(unit)


def _check_squad_mate_higher_base(unit, context, registry, stat=None) -> bool:
    """存在某个队友在该项属性上的卡牌基础值更高"""
    if stat is None:
        return False
    own = _card_stat(unit, stat)
    return any(_card_stat(m, stat) > own for m in context.squad_mates(unit))


# ===== 装备条件 =====

def _check_has_weapon(unit, context, registry, stat=None) -> bool:
    return unit.weapon is not None


def _check_has_handgun(unit, context, registry, stat=None) -> bool:
    return _weapon_category(unit, registry) == "handgun"


def _check_has_uzi(unit, context, registry, stat=None) -> bool:
    return _weapon_category(unit, registry) == "uzi"


def _check_has_smaw(unit, context, registry, stat=None) -> bool:
    return _weapon_category(unit, registry) == "smaw"


def _check_has_sword_or_unarmed(unit, context, registry, stat=None) -> bool:
    return unit.weapon is None or _weapon_category(unit, registry) == "sword"


def _check_has_armor(unit, context, registry, stat=None) -> bool:
    return unit.armor_item is not None


def _check_has_accessory(unit, context, registry, stat=None) -> bool:
    return bool(unit.accessories)


def _check_has_explosive(unit, context, registry, stat=None) -> bool:
    return any(registry.equipment.is_explosive(eq) for eq in unit.equipment)


def _check_has_multi_target_weapon(unit, context, registry, stat=None) -> bool:
    return unit.weapon is not None and unit.weapon.config.targets > 0


def _check_has_ranged_weapon(unit, context, registry, stat=None) -> bool:
    return any(registry.equipment.is_ranged_weapon(eq) for eq in unit.equipment)


# ===== 目标条件 =====

def _check_target_is_militia(unit, context, registry, stat=None) -> bool:
    return context.target is not None and context.target.is_militia


CheckerFunc = Callable[..., bool]

_CONDITION_CHECKERS: dict[str, CheckerFunc] = {
    "always": _check_always,
    "first_round": _check_first_round,
    "highest_init_in_squad": _check_highest_init_in_squad,
    "woman_in_squad": _check_woman_in_squad,
    "alone_in_squad": _check_alone_in_squad,
    "squad_mate_higher_base": _check_squad_mate_higher_base,
    "has_weapon": _check_has_weapon,
    "has_handgun": _check_has_handgun,
    "has_uzi": _check_has_uzi,
    "has_smaw": _check_has_smaw,
    "has_sword_or_unarmed": _check_has_sword_or_unarmed,
    "has_armor": _check_has_armor,
    "has_accessory": _check_has_accessory,
    "has_explosive": _check_has_explosive,
    "has_multi_target_weapon": _check_has_multi_target_weapon,
    "has_ranged_weapon": _check_has_ranged_weapon,
    "target_is_militia": _check_target_is_militia,
}


def is_known_condition(name: str) -> bool:
    return name in _CONDITION_CHECKERS


class ConditionChecker:
    """条件检查器 (无状态，按名称分派)"""

    @staticmethod
    def check(
        name: str,
        unit: Combatant,
        context: CombatContext,
        registry: Any,
        stat: Stat | None = None
    ) -> bool:
        """检查单个条件是否满足。

        Args:
            name: 条件名称
            unit: 能力持有者
            context: 战斗上下文
            registry: 能力注册表 (提供装备分类与性别查询)
            stat: 当前查询的属性 (部分条件按属性区分)

        Returns:
            条件是否满足，未知条件视为不满足
        """
        checker = _CONDITION_CHECKERS.get(name)
        if checker is None:
            return False
        return checker(unit, context, registry, stat)
