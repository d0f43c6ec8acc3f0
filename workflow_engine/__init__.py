"""Workflow automation engine: graph traversal, expressions, node handlers, scheduling and queueing."""

__version__ = "0.1.0"
