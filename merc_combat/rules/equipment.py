"""
装备效果注册表
按装备 id 查询特殊效果 (武器分类、爆炸物、治疗、地雷、攻击犬、组合部件)

注册表在构建后只读。未登记的装备视为普通属性加成物品，不会报错。
"""

import logging
from importlib import resources
from typing import Any, ClassVar, Iterable, Mapping, Optional, Tuple

import yaml

from ..config import Config
from ..models import EquipmentCategory, EquipmentEffect, EquipmentType

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "equipment_effects.yaml"


def _equipment_id(item: Any) -> str:
    """接受装备实例、装备配置或 id 字符串"""
    if isinstance(item, str):
        return item
    return item.id


def _equipment_type(item: Any) -> Optional[EquipmentType]:
    if isinstance(item, str):
        return None
    config = getattr(item, "config", item)
    return getattr(config, "type", None)


class EquipmentEffectRegistry:
    """装备效果注册表"""

    _default: ClassVar[Optional["EquipmentEffectRegistry"]] = None

    def __init__(self, table: Mapping[str, Any]) -> None:
        """
        Args:
            table: 装备 id -> 效果字段字典 (或 EquipmentEffect)
        """
        effects: dict[str, EquipmentEffect] = {}
        for equipment_id, raw in table.items():
            if isinstance(raw, EquipmentEffect):
                effects[equipment_id] = raw
            else:
                effects[equipment_id] = EquipmentEffect.model_validate(
                    {**(raw or {}), "equipment_id": equipment_id}
                )
        self._effects: Mapping[str, EquipmentEffect] = effects

    @classmethod
    def from_yaml(cls, text: str) -> "EquipmentEffectRegistry":
        return cls(yaml.safe_load(text) or {})

    @classmethod
    def default(cls) -> "EquipmentEffectRegistry":
        """包内自带的装备效果表 (首次使用时加载)"""
        if cls._default is None:
            text = resources.files("merc_combat.data").joinpath(DEFAULT_TABLE).read_text(encoding="utf-8")
            cls._default = cls.from_yaml(text)
            logger.debug("装备效果表已加载: %d 项", len(cls._default._effects))
        return cls._default

    # ===== 基础查询 =====

    def get_effect(self, item: Any) -> Optional[EquipmentEffect]:
        return self._effects.get(_equipment_id(item))

    def has_effect(self, item: Any) -> bool:
        return _equipment_id(item) in self._effects

    def _flag(self, item: Any, attr: str) -> bool:
        effect = self.get_effect(item)
        return bool(effect and getattr(effect, attr))

    def _number(self, item: Any, attr: str, default: int = 0) -> int:
        effect = self.get_effect(item)
        if effect is None:
            return default
        return getattr(effect, attr) or default

    # ===== 分类判定 =====

    def weapon_category(self, item: Any) -> Optional[str]:
        effect = self.get_effect(item)
        return effect.weapon_category if effect else None

    def is_weapon(self, item: Any) -> bool:
        if _equipment_type(item) == EquipmentType.WEAPON:
            return True
        return self.weapon_category(item) is not None or self.is_explosive(item)

    def is_armor(self, item: Any) -> bool:
        return _equipment_type(item) == EquipmentType.ARMOR or self._flag(item, "is_armor")

    def is_explosive(self, item: Any) -> bool:
        return self._flag(item, "is_explosive")

    def is_ranged_weapon(self, item: Any) -> bool:
        return self._flag(item, "ranged_attack")

    def discards_after_attack(self, item: Any) -> bool:
        return self._flag(item, "discard_after_attack")

    def is_consumable(self, item: Any) -> bool:
        return self._flag(item, "consumable")

    def is_healing_item(self, item: Any) -> bool:
        return self._flag(item, "is_healing_item")

    def is_epinephrine(self, item: Any) -> bool:
        return self._flag(item, "prevents_death")

    def is_land_mine(self, item: Any) -> bool:
        return self._flag(item, "is_land_mine")

    def is_attack_dog(self, item: Any) -> bool:
        return self._flag(item, "is_attack_dog")

    def is_repair_kit(self, item: Any) -> bool:
        return self._flag(item, "retrieves_from_discard")

    def is_explosives_component(self, item: Any) -> bool:
        return self._flag(item, "is_explosives_component")

    def category(self, item: Any) -> EquipmentCategory:
        """归入 weapon / armor / accessory / explosive / consumable 之一"""
        if self.is_explosive(item):
            return EquipmentCategory.EXPLOSIVE
        if self.is_weapon(item):
            return EquipmentCategory.WEAPON
        if self.is_armor(item):
            return EquipmentCategory.ARMOR
        if self.is_consumable(item) or self.is_healing_item(item):
            return EquipmentCategory.CONSUMABLE
        return EquipmentCategory.ACCESSORY

    # ===== 数值效果 =====

    def get_heal_amount(self, item: Any) -> int:
        return self._number(item, "heal_amount")

    def get_heal_dice(self, item: Any) -> int:
        return self._number(item, "heal_dice")

    def get_uses(self, item: Any) -> int:
        return self._number(item, "uses")

    def get_ranged_range(self, item: Any) -> int:
        return self._number(item, "ranged_range")

    def get_hit_threshold(self, item: Any) -> Optional[int]:
        """武器对命中阈值的覆盖值，没有覆盖时返回 None"""
        effect = self.get_effect(item)
        return effect.hit_threshold if effect else None

    def get_death_prevention_heal(self, item: Any) -> int:
        return self._number(item, "death_prevention_heal", Config.EPINEPHRINE_HEAL)

    def get_mine_damage(self, item: Any) -> int:
        return self._number(item, "mine_damage", Config.LAND_MINE_DAMAGE)

    def get_dog_health(self, item: Any) -> int:
        return self._number(item, "dog_health", Config.ATTACK_DOG_HEALTH)

    def get_extra_accessory_slots(self, item: Any) -> int:
        return self._number(item, "extra_accessory_slots")

    # ===== 组合部件 =====

    def find_matching_component(
        self,
        item: Any,
        carrier: Any,
        allies: Iterable[Any] = ()
    ) -> Optional[Tuple[Any, Any]]:
        """查找多部件装备的配对部件 (如炸药与雷管)。

        先在持有者身上找，再依次查找友军。

        Args:
            item: 需要配对的装备
            carrier: 持有该装备的单位 (拥有 equipment 列表)
            allies: 可提供配对部件的友军

        Returns:
            (持有者, 配对装备)，找不到时返回 None
        """
        effect = self.get_effect(item)
        if effect is None or not effect.matching_component:
            return None
        for holder in [carrier, *allies]:
            for candidate in holder.equipment:
                if candidate is item:
                    continue
                if _equipment_id(candidate) == effect.matching_component:
                    return holder, candidate
        return None
