"""Data nodes."""

from .items import FilterNode, LimitNode, SortNode
from .read_file import ReadFileNode, UploadFileNode
from .set_node import SetNode
from .transform import AggregateNode, DataMapperNode, JsonParseNode

__all__ = [
    "FilterNode",
    "LimitNode",
    "SortNode",
    "ReadFileNode",
    "UploadFileNode",
    "SetNode",
    "AggregateNode",
    "DataMapperNode",
    "JsonParseNode",
]
