"""Integration nodes."""

from .database import DatabaseNode
from .send_email import SendEmailNode
from .slack import SlackNode

__all__ = ["DatabaseNode", "SendEmailNode", "SlackNode"]
