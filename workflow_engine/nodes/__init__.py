"""Workflow node implementations."""

from .ai import AiChatNode, AiImageAnalysisNode, AiSentimentNode, AiTextGenerationNode
from .base import BaseNode
from .code import CodeNode, FunctionNode
from .data import (
    AggregateNode,
    DataMapperNode,
    FilterNode,
    JsonParseNode,
    LimitNode,
    ReadFileNode,
    SetNode,
    SortNode,
    UploadFileNode,
)
from .flow import DelayNode, IfNode, LoopNode, MergeNode, SwitchNode
from .http_request import HttpRequestNode
from .integrations import DatabaseNode, SendEmailNode, SlackNode
from .triggers import ScheduleTriggerNode, TriggerNode, WebhookTriggerNode

ALL_NODE_CLASSES: list[type[BaseNode]] = [
    # Triggers
    TriggerNode,
    WebhookTriggerNode,
    ScheduleTriggerNode,
    # Core
    HttpRequestNode,
    CodeNode,
    FunctionNode,
    SetNode,
    # Flow
    IfNode,
    SwitchNode,
    MergeNode,
    LoopNode,
    DelayNode,
    # Data
    FilterNode,
    SortNode,
    LimitNode,
    JsonParseNode,
    DataMapperNode,
    AggregateNode,
    ReadFileNode,
    UploadFileNode,
    # Integrations
    SendEmailNode,
    SlackNode,
    DatabaseNode,
    # AI
    AiChatNode,
    AiTextGenerationNode,
    AiImageAnalysisNode,
    AiSentimentNode,
]

__all__ = [
    "ALL_NODE_CLASSES",
    "BaseNode",
    *(cls.__name__ for cls in ALL_NODE_CLASSES),
]
