"""Flow control nodes."""

from .if_node import IfNode
from .loop import LoopNode
from .merge import MergeNode
from .switch import SwitchNode
from .wait import DelayNode

__all__ = ["IfNode", "LoopNode", "MergeNode", "SwitchNode", "DelayNode"]
