"""AI nodes."""

from .chat import AiChatNode, AiTextGenerationNode
from .image_analysis import AiImageAnalysisNode
from .sentiment import AiSentimentNode

__all__ = ["AiChatNode", "AiTextGenerationNode", "AiImageAnalysisNode", "AiSentimentNode"]
