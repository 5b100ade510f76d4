"""
AI 地图与物资决策辅助函数

区域选择、治疗、迫击炮目标和物资箱取舍。所有函数只读游戏状态，
平局时使用游戏持有的带种子随机源，保证同一局面 + 同一种子得到相同结果。
"""

from collections import deque
from typing import List, Literal, Optional, Sequence

from ..factory import CombatantAssembler
from ..models import AIChoice, AIDecision, BehaviorFlag, DEFER
from ..rules.abilities import AbilityRegistry
from ..rules.equipment import EquipmentEffectRegistry
from ..world import Equipment, Game, MercRecord, Sector
from .combat_helpers import CombatOdds, odds_from_rosters

PlacementType = Literal["rebel", "neutral", "dictator"]


def _pick(game: Game, tied: Sequence) -> AIDecision:
    """平局时用游戏随机源挑选"""
    if not tied:
        return DEFER
    if len(tied) == 1:
        return AIChoice(tied[0])
    return AIChoice(tied[game.rng.randrange(len(tied))])


# ===== 战力 =====

def calculate_rebel_strength(game: Game, sector: Sector) -> int:
    """区域内反抗军战力: 佣兵生命值 + 护甲，加上每名民兵 1 点"""
    total = 0
    for merc in game.rebel_mercs_in(sector):
        total += merc.health + merc.equipment_armor
    return total + sector.total_rebel_militia()


def get_rebel_controlled_sectors(game: Game) -> List[Sector]:
    return [s for s in game.iter_sectors() if game.is_rebel_controlled(s)]


def choose_weakest_rebel_sector(game: Game, sectors: Sequence[Sector] | None = None) -> AIDecision:
    """战力最低的反抗军区域，平局随机"""
    sectors = list(sectors) if sectors is not None else get_rebel_controlled_sectors(game)
    if not sectors:
        return DEFER
    strengths = {s.id: calculate_rebel_strength(game, s) for s in sectors}
    weakest = min(strengths.values())
    return _pick(game, [s for s in sectors if strengths[s.id] == weakest])


def calculate_combat_odds(
    game: Game,
    sector: Sector,
    abilities: AbilityRegistry | None = None
) -> CombatOdds:
    """战前评估: 双方 战斗值 x 生命值 之和 (任一方为空时该方记 0)"""
    rebels = CombatantAssembler.build_rebels(game, sector)
    dictator_side = CombatantAssembler.build_dictator_side(game, sector)
    return odds_from_rosters(rebels, dictator_side, abilities)


# ===== 距离 =====

def distance_between_sectors(game: Game, origin: Sector, destination: Sector) -> Optional[int]:
    """正交相邻的广度优先距离，不可达时返回 None"""
    if origin.id == destination.id:
        return 0
    visited = {origin.id}
    queue = deque([(origin, 0)])
    while queue:
        current, distance = queue.popleft()
        for adjacent in game.adjacent_sectors(current):
            if adjacent.id in visited:
                continue
            if adjacent.id == destination.id:
                return distance + 1
            visited.add(adjacent.id)
            queue.append((adjacent, distance + 1))
    return None


def distance_to_nearest_rebel(game: Game, sector: Sector) -> Optional[int]:
    distances = [
        d for d in (distance_between_sectors(game, sector, r) for r in get_rebel_controlled_sectors(game))
        if d is not None
    ]
    return min(distances) if distances else None


def _distance_key(distance: Optional[int]) -> float:
    return float("inf") if distance is None else distance


def find_nearest_hospital(game: Game, origin: Sector) -> AIDecision:
    """最近的城市 (医院)，不含出发区域本身"""
    visited = {origin.id}
    queue = deque([origin])
    while queue:
        current = queue.popleft()
        for adjacent in game.adjacent_sectors(current):
            if adjacent.id in visited:
                continue
            if adjacent.is_city:
                return AIChoice(adjacent)
            visited.add(adjacent.id)
            queue.append(adjacent)
    return DEFER


# ===== 区域选择 =====

def select_ai_base_location(game: Game) -> AIDecision:
    """价值最高的独裁者民兵驻守工业区，平局随机；没有工业区时退回第一个驻守区域"""
    controlled = [s for s in game.iter_sectors() if s.dictator_militia > 0]
    industries = [s for s in controlled if s.is_industry]
    if not industries:
        return AIChoice(controlled[0]) if controlled else DEFER
    best = max(s.value for s in industries)
    return _pick(game, [s for s in industries if s.value == best])


def select_militia_placement_sector(
    game: Game,
    allowed: Sequence[Sector],
    placement: PlacementType
) -> AIDecision:
    """按放置类型选择民兵放置区域。

    - rebel: 战力最弱的反抗军区域
    - neutral: 离独裁者基地 (或任一独裁者区域) 最近，其次价值最高
    - dictator: 离反抗军最近

    Args:
        game: 游戏状态
        allowed: 允许放置的区域
        placement: 放置类型

    Returns:
        AIChoice(区域) 或 Defer
    """
    if not allowed:
        return DEFER
    if len(allowed) == 1:
        return AIChoice(allowed[0])

    match placement:
        case "rebel":
            return choose_weakest_rebel_sector(game, allowed)
        case "neutral":
            base_id = game.dictator.base_sector_id
            anchors = [game.get_sector(base_id)] if base_id else [
                s for s in game.iter_sectors() if s.dictator_militia > 0
            ]

            def anchor_distance(sector: Sector) -> float:
                distances = [_distance_key(distance_between_sectors(game, sector, a)) for a in anchors]
                return min(distances) if distances else float("inf")

            ordered = sorted(allowed, key=lambda s: (anchor_distance(s), -s.value, s.id))
            return AIChoice(ordered[0])
        case "dictator":
            ordered = sorted(allowed, key=lambda s: (_distance_key(distance_to_nearest_rebel(game, s)), s.id))
            return AIChoice(ordered[0])
        case _:
            return AIChoice(allowed[0])


def select_new_merc_location(game: Game) -> AIDecision:
    """新雇佣独裁者佣兵的落点: 离最弱反抗军区域最近的独裁者区域"""
    dictator_sectors = [s for s in game.iter_sectors() if s.dictator_militia > 0]
    if not dictator_sectors:
        return DEFER
    if len(dictator_sectors) == 1:
        return AIChoice(dictator_sectors[0])

    weakest = choose_weakest_rebel_sector(game)
    if not isinstance(weakest, AIChoice):
        # 没有反抗军区域时选择守备最强的区域
        ordered = sorted(dictator_sectors, key=lambda s: (-s.dictator_militia, s.id))
        return AIChoice(ordered[0])

    target = weakest.value
    ordered = sorted(
        dictator_sectors,
        key=lambda s: (_distance_key(distance_between_sectors(game, s, target)), s.id)
    )
    return AIChoice(ordered[0])


# ===== 物资 =====

def should_leave_in_stash(item: Equipment, equipment: EquipmentEffectRegistry | None = None) -> bool:
    """AI 总是把地雷和修理包留在物资箱"""
    equipment = equipment or EquipmentEffectRegistry.default()
    return equipment.is_land_mine(item) or equipment.is_repair_kit(item)


def sort_equipment_by_ai_priority(
    items: Sequence[Equipment],
    equipment: EquipmentEffectRegistry | None = None
) -> List[Equipment]:
    """可拿取的装备按编号从高到低排列"""
    return sorted(
        (eq for eq in items if not should_leave_in_stash(eq, equipment)),
        key=lambda eq: -eq.config.serial
    )


def has_repair_kit_in_stash(sector: Sector, equipment: EquipmentEffectRegistry | None = None) -> bool:
    equipment = equipment or EquipmentEffectRegistry.default()
    return any(equipment.is_repair_kit(eq) for eq in sector.stash)


# ===== 治疗 =====

def merc_needs_healing(merc: MercRecord) -> bool:
    return merc.damage > 0 and not merc.is_dead


def get_mercs_with_healing_ability(
    mercs: Sequence[MercRecord],
    abilities: AbilityRegistry | None = None
) -> List[MercRecord]:
    abilities = abilities or AbilityRegistry.default()
    result = []
    for merc in mercs:
        if merc.is_dead:
            continue
        ability = abilities.get(merc.id)
        if ability and any(
            b.flag in (BehaviorFlag.HEALS_SQUAD_OUTSIDE_COMBAT, BehaviorFlag.SACRIFICE_DIE_TO_HEAL)
            for b in ability.behaviors
        ):
            result.append(merc)
    return result


def get_most_damaged_merc(mercs: Sequence[MercRecord]) -> AIDecision:
    """生命值最低的受伤佣兵，平局按名称"""
    damaged = [m for m in mercs if merc_needs_healing(m)]
    if not damaged:
        return DEFER
    return AIChoice(sorted(damaged, key=lambda m: (m.health, m.name))[0])


def get_ai_healing_priority(
    game: Game,
    damaged: Sequence[MercRecord],
    squad: Sequence[MercRecord],
    sector: Sector | None = None,
    abilities: AbilityRegistry | None = None,
    equipment: EquipmentEffectRegistry | None = None
) -> AIDecision:
    """AI 治疗方案。

    优先级: 治疗能力 > 医疗包 / 急救包 > 物资箱中的修理包。

    Returns:
        AIChoice(dict(type, target, merc?, item?, sector?)) 或 Defer
    """
    if not damaged:
        return DEFER
    equipment = equipment or EquipmentEffectRegistry.default()
    target = sorted(damaged, key=lambda m: m.health)[0]

    healers = get_mercs_with_healing_ability(squad, abilities)
    if healers:
        return AIChoice({"type": "ability", "merc": healers[0], "target": target})

    for merc in squad:
        slots = [merc.accessory, *merc.bandolier]
        for item in slots:
            if item is not None and equipment.is_healing_item(item):
                return AIChoice({"type": "item", "merc": merc, "item": item, "target": target})

    if sector is not None and has_repair_kit_in_stash(sector, equipment):
        return AIChoice({"type": "repair_kit", "target": target, "sector": sector})
    return DEFER


# ===== 迫击炮 =====

def has_mortar(merc: MercRecord, equipment: EquipmentEffectRegistry | None = None) -> bool:
    equipment = equipment or EquipmentEffectRegistry.default()
    return any(equipment.is_ranged_weapon(eq) for eq in merc.equipment)


def count_targets_in_sector(game: Game, sector: Sector) -> int:
    """区域内反抗军佣兵与民兵总数"""
    return len(game.rebel_mercs_in(sector)) + sector.total_rebel_militia()


def get_mortar_targets(
    game: Game,
    origin: Sector,
    merc: MercRecord | None = None,
    equipment: EquipmentEffectRegistry | None = None
) -> List[Sector]:
    """射程内存在反抗军的区域 (默认射程 1，即相邻区域)"""
    equipment = equipment or EquipmentEffectRegistry.default()
    reach = 1
    if merc is not None:
        ranges = [equipment.get_ranged_range(eq) for eq in merc.equipment if equipment.is_ranged_weapon(eq)]
        reach = max(ranges, default=1)
    targets = []
    for sector in game.iter_sectors():
        if sector.id == origin.id or count_targets_in_sector(game, sector) == 0:
            continue
        distance = distance_between_sectors(game, origin, sector)
        if distance is not None and distance <= reach:
            targets.append(sector)
    return targets


def select_mortar_target(game: Game, origin: Sector, merc: MercRecord | None = None) -> AIDecision:
    """目标最多的区域优先，其次反抗军战力最低，仍平局时随机"""
    targets = get_mortar_targets(game, origin, merc)
    if not targets:
        return DEFER
    most = max(count_targets_in_sector(game, s) for s in targets)
    crowded = [s for s in targets if count_targets_in_sector(game, s) == most]
    weakest = min(calculate_rebel_strength(game, s) for s in crowded)
    return _pick(game, [s for s in crowded if calculate_rebel_strength(game, s) == weakest])
