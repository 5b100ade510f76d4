"""
数据模型定义
包含所有枚举类型、配置模型 (Pydantic)、战斗快照 (Combatant) 以及战斗结果记录
"""

from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Generic, List, Literal, Mapping, Optional, Tuple, TypeVar, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator
from dataclasses import dataclass, field
from .config import Config

T = TypeVar("T")

# ============================================================================
# 枚举类型 (Enums)
# ============================================================================

class UnitKind(str, Enum):
    """参战单位类型"""
    MERC = "merc"
    MILITIA = "militia"
    DICTATOR = "dictator"       # 独裁者本人 (卡牌)
    ATTACK_DOG = "attack_dog"   # 由攻击犬装备召唤的临时单位


class Side(str, Enum):
    """阵营"""
    REBEL = "rebel"
    DICTATOR = "dictator"

    @property
    def opponent(self) -> "Side":
        return Side.DICTATOR if self is Side.REBEL else Side.REBEL


class EquipmentType(str, Enum):
    """装备槽位类型"""
    WEAPON = "Weapon"
    ARMOR = "Armor"
    ACCESSORY = "Accessory"


class EquipmentCategory(str, Enum):
    """装备分类标签 (由装备效果表推导)"""
    WEAPON = "weapon"
    ARMOR = "armor"
    ACCESSORY = "accessory"
    EXPLOSIVE = "explosive"
    CONSUMABLE = "consumable"


class Stat(str, Enum):
    """可被修正的属性"""
    COMBAT = "combat"
    INITIATIVE = "initiative"
    TRAINING = "training"
    TARGETS = "targets"
    ARMOR = "armor"
    HEALTH = "health"


class BehaviorFlag(str, Enum):
    """布尔型能力标记"""
    # 目标与先手
    ALWAYS_FIRST = "always_first"
    ALWAYS_BEFORE_MILITIA = "always_before_militia"
    ROLLS_INITIATIVE = "rolls_initiative"
    TARGETED_LAST = "targeted_last"
    IGNORES_INITIATIVE_PENALTIES = "ignores_initiative_penalties"
    PRIORITIZE_MERCS = "prioritize_mercs"
    EACH_HIT_NEW_MILITIA_TARGET = "each_hit_new_militia_target"
    SIXES_CAN_RETARGET = "sixes_can_retarget"
    # 战斗动作
    MAY_REROLL_ONCE = "may_reroll_once"
    SACRIFICE_DIE_TO_HEAL = "sacrifice_die_to_heal"
    PREEMPTIVE_STRIKE = "preemptive_strike"
    SECOND_SHOT = "second_shot"
    CONVERTS_MILITIA = "converts_militia"
    # 被动
    IMMUNE_TO_ATTACK_DOGS = "immune_to_attack_dogs"
    WILL_NOT_HARM_DOGS = "will_not_harm_dogs"
    WONT_USE_EXPLOSIVES = "wont_use_explosives"
    REQUIRES_ACCESSORY = "requires_accessory"
    DOESNT_COUNT_TOWARD_LIMIT = "doesnt_count_toward_limit"
    WEAPON_IN_ACCESSORY_SLOT = "weapon_in_accessory_slot"
    ALL_SLOTS_ACCESSORIES = "all_slots_accessories"
    FREE_ACCESSORY_ON_HIRE = "free_accessory_on_hire"
    HEALS_SQUAD_OUTSIDE_COMBAT = "heals_squad_outside_combat"
    RETRIEVES_FROM_DISCARD = "retrieves_from_discard"
    HANDLES_LAND_MINES = "handles_land_mines"
    DRAWS_EQUIPMENT_FOR_SQUAD = "draws_equipment_for_squad"


class ModifierScope(str, Enum):
    """修正作用范围"""
    SELF = "self"
    SQUAD_MATES = "squad_mates"         # 同小队其他佣兵
    ALL_SQUAD = "all_squad"             # 同小队全体 (含自身)
    FRIENDLY_MILITIA = "friendly_militia"
    ENEMY_MERCS = "enemy_mercs"


class SectorType(str, Enum):
    """区域类型"""
    WILDERNESS = "Wilderness"
    CITY = "City"
    INDUSTRY = "Industry"


class CombatPhase(str, Enum):
    """战斗状态机阶段"""
    ASSEMBLING = "Assembling"
    ROLLING_INITIATIVE = "RollingInitiative"
    ATTACKING = "Attacking"
    APPLYING_DAMAGE = "ApplyingDamage"
    REMOVING_DEAD = "RemovingDead"
    CHECKING_CONTINUATION = "CheckingContinuation"
    RETREAT_CHECK = "RetreatCheck"
    RESOLVED = "Resolved"


class CombatOutcome(str, Enum):
    """战斗结局"""
    REBEL_VICTORY = "rebel_victory"
    DICTATOR_VICTORY = "dictator_victory"
    RETREAT = "retreat"
    DRAW = "draw"
    INTERRUPTED = "interrupted"


class ControlMode(str, Enum):
    """阵营控制方式"""
    HUMAN = "human"
    AI = "ai"


class DecisionKind(str, Enum):
    """决策点类型"""
    TARGETS = "targets"
    RETREAT = "retreat"
    EPINEPHRINE = "epinephrine"


class AttackKind(str, Enum):
    """攻击子步骤类型"""
    PREEMPTIVE = "preemptive"
    NORMAL = "normal"
    SECOND_SHOT = "second_shot"


class EquipmentChangeKind(str, Enum):
    """装备状态变化"""
    DESTROYED = "destroyed"     # 护甲被打穿
    CONSUMED = "consumed"       # 一次性物品已使用
    DROPPED = "dropped"         # 单位阵亡后掉落


class EventKind(str, Enum):
    """战斗事件类型 (供动画层消费)"""
    COMBAT_START = "combat_start"
    ROUND_START = "round_start"
    INITIATIVE = "initiative"
    ATTACK = "attack"
    HIT = "hit"
    ARMOR_DESTROYED = "armor_destroyed"
    DEATH = "death"
    CONVERSION = "conversion"
    EPINEPHRINE = "epinephrine"
    ITEM_CONSUMED = "item_consumed"
    DOG_ASSIGNED = "dog_assigned"
    LAND_MINE = "land_mine"
    HEAL = "heal"
    RETREAT = "retreat"
    UNIT_LEAVES = "unit_leaves"
    COMBAT_END = "combat_end"

# ============================================================================
# 源数据模型 (Catalog Definitions) - Pydantic
# ============================================================================

class UnitConfig(BaseModel):
    """单位静态配置表 (佣兵 / 独裁者卡牌)"""
    id: str
    name: str
    initiative: int = 0
    training: int = 0
    combat: int = 0
    health: int = Config.MERC_BASE_HEALTH
    targets: int = Config.MERC_BASE_TARGETS
    armor: int = Config.MERC_BASE_ARMOR

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class EquipmentConfig(BaseModel):
    """装备静态配置表

    字段名兼容原始数据表的 camelCase 写法 (combatBonus, armorBonus ...)。
    """
    id: str
    name: str
    type: EquipmentType
    combat_bonus: int = Field(default=0, alias="combatBonus")
    initiative: int = 0
    training: int = 0
    targets: int = 0
    armor_bonus: int = Field(default=0, alias="armorBonus")
    negates_armor: bool = Field(default=False, alias="negatesArmor")
    is_one_use: bool = Field(default=False, alias="isOneUse")
    serial: int = 0

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        """兼容小写的类型写法 (weapon -> Weapon)"""
        if isinstance(v, str):
            return v.strip().capitalize()
        return v


# ============================================================================
# 规则表模型 (Registry Entries) - Pydantic, 只读
# ============================================================================

NumericOp = Literal["add", "sub", "mul", "div", "set", "min", "max"]


class StatModifier(BaseModel):
    """带条件的单项属性修正

    只描述修正本身，从不修改注册表，仅作用于单次计算的派生值。
    """
    stat: Stat
    value: float
    op: NumericOp = "add"
    scope: ModifierScope = ModifierScope.SELF
    condition: str = "always"
    source: str = ""            # 来源单位 id，由注册表填充

    model_config = ConfigDict(frozen=True)

    @property
    def is_multiplicative(self) -> bool:
        return self.op in ("mul", "div")


class BehaviorEntry(BaseModel):
    """带条件的布尔能力"""
    flag: BehaviorFlag
    condition: str = "always"

    model_config = ConfigDict(frozen=True)


class AbilityDefinition(BaseModel):
    """单个单位的全部特殊规则"""
    unit_id: str
    description: str = ""
    female: bool = False
    hit_threshold: Optional[int] = None
    modifiers: Tuple[StatModifier, ...] = ()
    behaviors: Tuple[BehaviorEntry, ...] = ()
    passives: Dict[str, int] = {}
    incompatible_with: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)


class EquipmentEffect(BaseModel):
    """装备特殊效果定义。未登记的装备视为纯属性加成物品。"""
    equipment_id: str
    weapon_category: Optional[str] = None     # handgun / uzi / rifle / smaw / sword
    is_explosive: bool = False
    discard_after_attack: bool = False
    ranged_attack: bool = False
    ranged_range: int = 0
    hit_threshold: Optional[int] = None
    is_healing_item: bool = False
    heal_amount: int = 0
    heal_dice: int = 0
    uses: int = 0
    prevents_death: bool = False
    death_prevention_heal: int = 0
    is_land_mine: bool = False
    mine_damage: int = 0
    is_attack_dog: bool = False
    dog_health: int = 0
    retrieves_from_discard: bool = False
    extra_accessory_slots: int = 0
    is_explosives_component: bool = False
    matching_component: Optional[str] = None
    is_armor: bool = False
    consumable: bool = False
    description: str = ""

    model_config = ConfigDict(frozen=True)


# ============================================================================
# 运行时快照 (Combatant) - Pydantic
# ============================================================================

class Combatant(BaseModel):
    """参战单位快照

    由一次战斗独占，背后对应持久化的单位记录 (source)，
    所有修改只作用在快照上，战斗结束时统一回写。
    """
    id: str
    name: str
    kind: UnitKind
    side: Side
    owner_id: str
    unit_id: str                # 规则表查询用的 id (佣兵名 / "militia" / 独裁者 id)
    sector_id: str
    squad_id: Optional[str] = None

    # 基础属性 (含装备加成，不含能力修正)
    base_combat: int = 0
    base_initiative: int = 0
    base_training: int = 0
    base_targets: int = 1
    max_health: int = 1

    # 当前状态
    health: int = 1
    armor: int = 0
    equipment: List[Any] = Field(default_factory=list)

    is_dead: bool = False
    retreated: bool = False
    rolled_initiative: Optional[int] = None
    reroll_used: bool = False
    dog_target_id: Optional[str] = None     # 攻击犬: 被指派的敌方佣兵
    assigned_dog_id: Optional[str] = None   # 被攻击犬缠住的佣兵: 犬的 id
    converted_from: Optional[Side] = None

    source: Any = Field(default=None, exclude=True)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def is_alive(self) -> bool:
        """仍可行动/被选为目标 (未死亡、未撤退且生命值大于 0)"""
        return not self.is_dead and not self.retreated and self.health > 0

    @property
    def is_militia(self) -> bool:
        return self.kind == UnitKind.MILITIA

    @property
    def is_dog(self) -> bool:
        return self.kind == UnitKind.ATTACK_DOG

    @property
    def is_dictator(self) -> bool:
        return self.kind == UnitKind.DICTATOR

    @property
    def is_merc_like(self) -> bool:
        """佣兵或独裁者本人 (拥有装备与能力的单位)"""
        return self.kind in (UnitKind.MERC, UnitKind.DICTATOR)

    @property
    def damage(self) -> int:
        return max(0, self.max_health - self.health)

    def items_of_type(self, eq_type: EquipmentType) -> List[Any]:
        return [eq for eq in self.equipment if eq.config.type == eq_type]

    @property
    def weapon(self) -> Any:
        weapons = self.items_of_type(EquipmentType.WEAPON)
        return weapons[0] if weapons else None

    @property
    def armor_item(self) -> Any:
        items = self.items_of_type(EquipmentType.ARMOR)
        return items[0] if items else None

    @property
    def accessories(self) -> List[Any]:
        return self.items_of_type(EquipmentType.ACCESSORY)


# ============================================================================
# 战斗上下文 (Per-invocation Context)
# ============================================================================

@dataclass
class CombatContext:
    """战斗上下文快照

    每次战斗调用独立创建，向下传递给注册表、目标选择和 AI 辅助函数。
    """
    round_number: int
    rebels: List[Combatant] = field(default_factory=list)
    dictator_side: List[Combatant] = field(default_factory=list)
    target: Optional[Combatant] = None

    def side_of(self, side: Side) -> List[Combatant]:
        return self.rebels if side == Side.REBEL else self.dictator_side

    def allies_of(self, unit: Combatant) -> List[Combatant]:
        """同阵营存活单位 (不含自身)"""
        return [c for c in self.side_of(unit.side) if c.id != unit.id and c.is_alive]

    def enemies_of(self, unit: Combatant) -> List[Combatant]:
        """敌方存活单位"""
        return [c for c in self.side_of(unit.side.opponent) if c.is_alive]

    def squad_mates(self, unit: Combatant) -> List[Combatant]:
        """同一小队中的其他存活佣兵"""
        if unit.squad_id is None:
            return []
        return [
            c for c in self.allies_of(unit)
            if c.is_merc_like and c.squad_id == unit.squad_id
        ]

    def find(self, combatant_id: str) -> Optional[Combatant]:
        for c in self.rebels + self.dictator_side:
            if c.id == combatant_id:
                return c
        return None


# ============================================================================
# 战斗记录 (Immutable Records)
# ============================================================================

@dataclass(frozen=True)
class DamageRecord:
    """单个目标在一次攻击中受到的伤害"""
    target_id: str
    armor_damage: int
    health_damage: int


@dataclass(frozen=True)
class AttackRecord:
    """单次攻击子步骤记录"""
    attacker_id: str
    kind: AttackKind
    rolls: Tuple[int, ...]
    hit_threshold: int
    hits: int
    target_ids: Tuple[str, ...]
    damage: Tuple[DamageRecord, ...] = ()
    rerolled_from: Optional[Tuple[int, ...]] = None
    sacrificed_die: Optional[int] = None


@dataclass(frozen=True)
class CombatRoundRecord:
    """单回合记录"""
    round_number: int
    initiative_order: Tuple[str, ...]
    attacks: Tuple[AttackRecord, ...]
    casualties: Tuple[str, ...] = ()
    conversions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class EquipmentChange:
    """装备状态变化"""
    combatant_id: str
    equipment_id: str
    instance_id: str
    kind: EquipmentChangeKind


@dataclass(frozen=True)
class CombatEvent:
    """结构化战斗事件 (渲染由外部负责)"""
    kind: EventKind
    round_number: int
    subject_id: Optional[str] = None
    data: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class CombatResult:
    """战斗终局记录，生成后不可变"""
    sector_id: str
    outcome: CombatOutcome
    winner: Optional[Side]
    rounds: Tuple[CombatRoundRecord, ...]
    killed: Tuple[str, ...]
    retreated: Tuple[str, ...]
    converted: Tuple[str, ...]
    equipment_changes: Tuple[EquipmentChange, ...]
    events: Tuple[CombatEvent, ...]
    retreat_sector_id: Optional[str] = None

    @property
    def rounds_fought(self) -> int:
        return len(self.rounds)


# ============================================================================
# 决策点与 AI 决策 (Decision Sum Type)
# ============================================================================

@dataclass(frozen=True)
class PendingDecision:
    """引擎暂停时等待的决策"""
    kind: DecisionKind
    side: Side
    actor_id: str                   # 发起决策的单位或玩家
    options: Tuple[Any, ...]
    max_choices: int = 1
    prompt: str = ""


@dataclass(frozen=True)
class AIChoice(Generic[T]):
    """AI 给出的具体选择"""
    value: T


@dataclass(frozen=True)
class Defer:
    """AI 没有偏好，由调用方回退到默认值或人工输入"""


AIDecision = Union[AIChoice, Defer]
DEFER = Defer()
