"""
数据加载器 (Loader)
负责从 JSON 文件读取单位与装备目录并解析为 Pydantic 配置模型
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Sequence, Type, TypeVar
from pydantic import BaseModel, ValidationError

from .models import UnitConfig, EquipmentConfig, EquipmentType
from .rules.abilities import AbilityRegistry
from .world import Equipment, Game, MercRecord, DictatorRecord

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)


class DataLoader:
    """数据加载器 - 静态目录中心 (启动时加载一次，之后只读)"""

    def __init__(self, data_dir: str = "data", abilities: AbilityRegistry | None = None) -> None:
        """
        初始化数据加载器

        Args:
            data_dir: 数据文件目录路径
            abilities: 能力表 (用于额外生命值等被动)，默认使用包内自带表
        """
        self.data_dir: Path = Path(data_dir)
        self.abilities: AbilityRegistry = abilities or AbilityRegistry.default()
        self.units: Dict[str, UnitConfig] = {}
        self.equipment: Dict[str, EquipmentConfig] = {}

    def load_all(self) -> None:
        """加载单位与装备目录"""
        self._load_from_json("units.json", UnitConfig, self.units)
        self._load_from_json("equipment.json", EquipmentConfig, self.equipment)

    def _load_from_json(self, filename: str, model_cls: Type[T], container: Dict[str, T]) -> None:
        """通用的 JSON 加载方法"""
        file_path = self.data_dir / filename
        if not file_path.exists():
            if "units" in filename:
                raise FileNotFoundError(f"单位数据文件不存在: {file_path}")
            raise FileNotFoundError(f"装备数据文件不存在: {file_path}")

        with open(file_path, 'r', encoding='utf-8') as f:
            raw_data = json.load(f)

        for item in raw_data:
            try:
                obj = model_cls.model_validate(item)
            except ValidationError as e:
                logger.warning("加载 %s 中的项失败: %s. 错误: %s", filename, item.get('id', 'unknown'), e)
                continue
            container[obj.id] = obj  # type: ignore

    # ============= 获取方法 =============

    def get_unit(self, unit_id: str) -> UnitConfig:
        if unit_id not in self.units:
            raise KeyError(f"单位配置不存在: {unit_id}")
        return self.units[unit_id]

    def get_equipment(self, equipment_id: str) -> EquipmentConfig:
        if equipment_id not in self.equipment:
            raise KeyError(f"装备配置不存在: {equipment_id}")
        return self.equipment[equipment_id]

    def get_all_weapons(self) -> List[EquipmentConfig]:
        """筛选所有武器"""
        return [e for e in self.equipment.values() if e.type == EquipmentType.WEAPON]

    # ============= 实例化 =============

    def create_merc(self, game: Game, unit_id: str, equipment_ids: Sequence[str] = ()) -> MercRecord:
        """按目录创建佣兵记录并装备指定物品"""
        merc = MercRecord(config=self.get_unit(unit_id), extra_health=self.abilities.extra_health(unit_id))
        for eq_id in equipment_ids:
            merc.equip(game.new_equipment(self.get_equipment(eq_id)))
        return merc

    def create_dictator(self, game: Game, unit_id: str, equipment_ids: Sequence[str] = ()) -> DictatorRecord:
        card = DictatorRecord(config=self.get_unit(unit_id))
        for eq_id in equipment_ids:
            card.equip(game.new_equipment(self.get_equipment(eq_id)))
        return card

    def create_equipment(self, game: Game, equipment_id: str) -> Equipment:
        return game.new_equipment(self.get_equipment(equipment_id))
