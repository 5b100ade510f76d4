"""
游戏全局配置常量
存放所有硬编码的规则数值，便于后续调整平衡性
"""


class Config:
    """全局战斗配置"""

    # ========== 骰子与命中 ==========
    DICE_SIDES = 6              # 六面骰
    HIT_THRESHOLD = 4           # 默认命中阈值 (骰面 >= 4 视为命中)

    # ========== 民兵属性 ==========
    MILITIA_INITIATIVE = 2
    MILITIA_COMBAT = 1
    MILITIA_HEALTH = 1
    MILITIA_ARMOR = 0
    MILITIA_TARGETS = 1
    MAX_MILITIA_PER_SECTOR = 10     # 单个区域每方民兵上限

    # ========== 佣兵 / 独裁者基础属性 ==========
    MERC_BASE_HEALTH = 3
    MERC_BASE_TARGETS = 1
    MERC_BASE_ARMOR = 0
    DICTATOR_BASE_HEALTH = 3

    # ========== 回合限制 ==========
    MAX_ROUNDS = 10             # 超过该回合数判定为平局

    # ========== 装备效果 ==========
    EPINEPHRINE_HEAL = 1        # 肾上腺素救回后的生命值
    LAND_MINE_DAMAGE = 1        # 地雷对每名佣兵造成的伤害
    ATTACK_DOG_HEALTH = 3       # 攻击犬生命值
    SURGEON_HEAL_PER_DIE = 1    # 牺牲一枚骰子的治疗量

    # ========== AI 启发式 ==========
    AI_REROLL_HIT_RATIO = 0.5           # 命中比例低于该值时重投
    AI_RETREAT_STRENGTH_RATIO = 0.5     # 己方战力低于敌方该比例时撤退
