"""
Contains shared enums and field types used across models and schemas.
"""
from enum import Enum


class AccountType(str, Enum):
    regular = "regular"
    ironman = "ironman"
    hardcore = "hardcore"
    ultimate = "ultimate"
    unknown = "unknown"

    @property
    def label(self) -> str:
        return {
            "regular": "Regular",
            "ironman": "Ironman",
            "hardcore": "Hardcore Ironman",
            "ultimate": "Ultimate Ironman",
            "unknown": "Unknown",
        }[self.value]


# Skills in the order the hiscores and CML report them
SKILLS: tuple[str, ...] = (
    "overall",
    "attack",
    "defence",
    "strength",
    "hitpoints",
    "ranged",
    "prayer",
    "magic",
    "cooking",
    "woodcutting",
    "fletching",
    "fishing",
    "firemaking",
    "crafting",
    "smithing",
    "mining",
    "herblore",
    "agility",
    "thieving",
    "slayer",
    "farming",
    "runecrafting",
    "hunter",
    "construction",
)

