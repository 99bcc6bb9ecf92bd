"""Battle engine modules"""

from .iterative import IterativeBattleEngine

__all__ = ["IterativeBattleEngine"]
