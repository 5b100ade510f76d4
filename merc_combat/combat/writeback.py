"""
战斗结果回写
战斗结束 (或中断) 时把快照状态写回持久化记录，这是引擎唯一修改单位记录的地方
"""

import logging
from typing import Dict, List, Sequence

from ..config import Config
from ..models import Combatant, EquipmentChange, EquipmentChangeKind, Side
from ..world import DictatorRecord, Equipment, Game, MercRecord, Sector

logger = logging.getLogger(__name__)

# 物资箱中物品变化使用的持有者 id
STASH_HOLDER = "stash"


def _find_item(items: Sequence[Equipment], instance_id: str) -> Equipment | None:
    for item in items:
        if item.instance_id == instance_id:
            return item
    return None


def _remove_from_squads(game: Game, record: MercRecord) -> None:
    squads = [s for p in game.rebels for s in p.squads]
    if game.dictator.squad is not None:
        squads.append(game.dictator.squad)
    for squad in squads:
        if record in squad.mercs:
            squad.mercs.remove(record)


def _apply_equipment_changes(
    game: Game,
    sector: Sector,
    units: Dict[str, Combatant],
    changes: Sequence[EquipmentChange]
) -> None:
    """移除被摧毁或已消耗的装备并放入弃牌堆"""
    for change in changes:
        if change.kind == EquipmentChangeKind.DROPPED:
            continue
        if change.combatant_id == STASH_HOLDER:
            item = _find_item(sector.stash, change.instance_id)
            if item is not None:
                sector.stash.remove(item)
                game.discard_equipment(item)
            continue
        unit = units.get(change.combatant_id)
        record = unit.source if unit is not None else None
        if not isinstance(record, MercRecord):
            continue
        item = _find_item(record.equipment, change.instance_id)
        if item is not None and record.unequip(item):
            game.discard_equipment(item)


def _write_unit(game: Game, unit: Combatant) -> List[EquipmentChange]:
    """回写单个佣兵 (或独裁者本人)，阵亡时返回掉落的装备"""
    record: MercRecord = unit.source
    if not unit.is_dead:
        record.damage = min(record.max_health, max(0, unit.max_health - unit.health))
        return []

    record.damage = record.max_health
    record.is_dead = True
    dropped = []
    for item in record.unequip_all():
        game.discard_equipment(item)
        dropped.append(EquipmentChange(unit.id, item.id, item.instance_id, EquipmentChangeKind.DROPPED))
    _remove_from_squads(game, record)
    if not isinstance(record, DictatorRecord):
        game.merc_discard.append(record)
    logger.debug("%s 阵亡，掉落 %d 件装备", unit.id, len(dropped))
    return dropped


def _write_militia(game: Game, sector: Sector, units: Sequence[Combatant]) -> None:
    """按存活 (含被转化) 的民兵快照重写各方民兵数量"""
    survivors = [u for u in units if u.is_militia and not u.is_dead and u.health > 0]
    dictator = sum(1 for u in survivors if u.side == Side.DICTATOR)
    sector.dictator_militia = min(dictator, Config.MAX_MILITIA_PER_SECTOR)
    for player in game.rebels:
        count = sum(1 for u in survivors if u.side == Side.REBEL and u.owner_id == player.id)
        if count or player.id in sector.rebel_militia:
            sector.rebel_militia[player.id] = min(count, Config.MAX_MILITIA_PER_SECTOR)


def apply_combat_results(
    game: Game,
    sector: Sector,
    units: Sequence[Combatant],
    changes: Sequence[EquipmentChange]
) -> List[EquipmentChange]:
    """
    把战斗结果写回游戏状态

    Args:
        game: 游戏状态
        sector: 战斗区域
        units: 本场战斗的全部快照 (含阵亡与撤退单位)
        changes: 战斗中产生的装备变化

    Returns:
        阵亡单位掉落装备产生的变化记录
    """
    by_id = {u.id: u for u in units}
    _apply_equipment_changes(game, sector, by_id, changes)

    dropped: List[EquipmentChange] = []
    for unit in units:
        if unit.is_merc_like and isinstance(unit.source, MercRecord):
            dropped.extend(_write_unit(game, unit))

    _write_militia(game, sector, units)
    logger.debug(
        "区域 %s 回写完成: 独裁者民兵 %d, 反抗军民兵 %s",
        sector.id, sector.dictator_militia, dict(sector.rebel_militia)
    )
    return dropped
