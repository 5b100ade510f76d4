"""
单元测试: 装备效果注册表
"""

import pytest

from merc_combat.config import Config
from merc_combat.models import EquipmentCategory, EquipmentConfig, EquipmentType
from merc_combat.rules import EquipmentEffectRegistry
from merc_combat.world import Equipment


def _component(item_id):
    config = EquipmentConfig(id=item_id, name=item_id.title(), type=EquipmentType.ACCESSORY)
    return Equipment(config=config, instance_id=f"{item_id}#1")


class TestClassification:

    @pytest.mark.parametrize("key,category", [
        ("handgun", EquipmentCategory.WEAPON),
        ("grenade", EquipmentCategory.EXPLOSIVE),
        ("kevlar", EquipmentCategory.ARMOR),
        ("epinephrine", EquipmentCategory.CONSUMABLE),
        ("medical-kit", EquipmentCategory.CONSUMABLE),
        ("radio", EquipmentCategory.ACCESSORY),
    ])
    def test_category(self, equipment_registry, make_item, key, category):
        assert equipment_registry.category(make_item(key)) == category

    def test_unknown_item_is_plain_accessory(self, equipment_registry):
        """未登记的装备不报错，视为普通配件"""
        assert not equipment_registry.has_effect("mystery-box")
        assert equipment_registry.category("mystery-box") == EquipmentCategory.ACCESSORY

    def test_weapon_category_accepts_id_or_item(self, equipment_registry, make_item):
        assert equipment_registry.weapon_category("uzi") == "uzi"
        assert equipment_registry.weapon_category(make_item("ap-rifle")) == "rifle"
        assert equipment_registry.weapon_category("kevlar-vest") is None

    def test_flags(self, equipment_registry):
        assert equipment_registry.is_epinephrine("epinephrine-shot")
        assert equipment_registry.is_land_mine("land-mine")
        assert equipment_registry.is_attack_dog("attack-dog")
        assert equipment_registry.is_repair_kit("repair-kit")
        assert equipment_registry.discards_after_attack("grenade")
        assert equipment_registry.is_ranged_weapon("mortar")
        assert not equipment_registry.is_explosive("9mm-handgun")


class TestNumericEffects:

    def test_values_from_table(self, equipment_registry):
        assert equipment_registry.get_dog_health("attack-dog") == 3
        assert equipment_registry.get_mine_damage("land-mine") == 1
        assert equipment_registry.get_uses("medical-kit") == 3
        assert equipment_registry.get_ranged_range("mortar") == 1
        assert equipment_registry.get_extra_accessory_slots("bandolier") == 3

    def test_defaults_for_unlisted(self, equipment_registry):
        assert equipment_registry.get_death_prevention_heal("mystery-box") == Config.EPINEPHRINE_HEAL
        assert equipment_registry.get_hit_threshold("9mm-handgun") is None
        assert equipment_registry.get_uses("mystery-box") == 0

    def test_custom_table(self):
        registry = EquipmentEffectRegistry.from_yaml("laser-pistol: {weapon_category: handgun, hit_threshold: 3}")
        assert registry.get_hit_threshold("laser-pistol") == 3
        assert registry.category("laser-pistol") == EquipmentCategory.WEAPON


class TestComponents:

    def test_matching_component_on_carrier(self, equipment_registry, make_unit):
        detonator, explosives = _component("detonator"), _component("explosives")
        carrier = make_unit(equipment=[detonator, explosives])
        assert equipment_registry.find_matching_component(detonator, carrier) == (carrier, explosives)

    def test_matching_component_from_ally(self, equipment_registry, make_unit):
        detonator, explosives = _component("detonator"), _component("explosives")
        carrier = make_unit(equipment=[detonator])
        ally = make_unit("bouba", equipment=[explosives])
        assert equipment_registry.find_matching_component(detonator, carrier, [ally]) == (ally, explosives)

    def test_no_match(self, equipment_registry, make_unit):
        detonator = _component("detonator")
        carrier = make_unit(equipment=[detonator])
        assert equipment_registry.find_matching_component(detonator, carrier) is None
        assert equipment_registry.find_matching_component("9mm-handgun", carrier) is None
