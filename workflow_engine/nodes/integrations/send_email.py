"""Send Email node - SMTP delivery via aiosmtplib, per item for array input."""

from __future__ import annotations

import logging
from email.message import EmailMessage
from typing import TYPE_CHECKING, Any, Literal

import aiosmtplib
import markdown

from ...core.config import settings
from ...core.exceptions import ValidationError
from ...engine.expression_engine import ExpressionEngine, expression_engine
from ..base import BaseNode

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition, NodeOutput

logger = logging.getLogger(__name__)

EMAIL_CSS = """
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }
a { color: #3498db; }
code { background: #f4f4f4; padding: 2px 6px; border-radius: 3px; }
pre { background: #2d2d2d; color: #f8f8f2; padding: 16px; border-radius: 6px; overflow-x: auto; }
table { border-collapse: collapse; width: 100%; margin: 16px 0; }
th, td { border: 1px solid #ddd; padding: 12px; text-align: left; }
"""


def wrap_html_in_template(html_content: str) -> str:
    """Wrap an HTML fragment in a styled email document."""
    if "<html" in html_content.lower() or "<body" in html_content.lower():
        return html_content
    return (
        '<!DOCTYPE html>\n<html>\n<head>\n<meta charset="utf-8">\n'
        f"<style>{EMAIL_CSS}</style>\n</head>\n<body>\n{html_content}\n</body>\n</html>"
    )


def render_markdown_to_html(markdown_text: str) -> str:
    """Convert markdown to styled HTML for emails."""
    html_content = markdown.markdown(
        markdown_text,
        extensions=["tables", "fenced_code", "nl2br", "sane_lists"],
    )
    return wrap_html_in_template(html_content)


def build_message(
    from_email: str,
    to: str,
    subject: str,
    body: str,
    body_format: Literal["plain", "html", "markdown"] = "plain",
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)  # plain text fallback

    if body_format == "markdown":
        msg.add_alternative(render_markdown_to_html(body), subtype="html")
    elif body_format == "html":
        msg.add_alternative(wrap_html_in_template(body), subtype="html")
    return msg


class SendEmailNode(BaseNode):
    """
    Send Email node.

    For array input every item gets its own message, with toEmail/subject/body
    resolved against that item (`{{$item.email}}`). Per-item failures are
    collected into the report; a non-array input fails the node on error.
    """

    @property
    def type(self) -> str:
        return "email"

    @property
    def aliases(self) -> tuple[str, ...]:
        return ("sendEmail",)

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        config = node_definition.config
        smtp = {
            "hostname": config.get("smtpHost") or settings.smtp_host,
            "port": int(config.get("smtpPort") or settings.smtp_port),
            "username": config.get("smtpUser") or settings.smtp_user,
            "password": config.get("smtpPassword") or settings.smtp_password,
        }
        if not smtp["hostname"]:
            raise ValidationError("SMTP host is required", field="smtpHost")

        body_format = self._body_format(node_definition)
        from_email = config.get("fromEmail") or smtp["username"]
        if not from_email:
            raise ValidationError("fromEmail is required", field="fromEmail")

        expr_context = ExpressionEngine.create_context(context)
        template = node_definition.authored_config

        if not isinstance(input_data, list):
            fields = expression_engine.resolve_for_item(template, expr_context, input_data)
            result = await self._send_one(fields, from_email, body_format, smtp)
            return self.output(result, sent=1, failed=0)

        results: list[dict[str, Any]] = []
        for index, item in enumerate(input_data):
            fields = expression_engine.resolve_for_item(template, expr_context, item)
            try:
                results.append(await self._send_one(fields, from_email, body_format, smtp))
            except Exception as e:
                logger.warning("Email %d of node %s failed: %s", index, node_definition.id, e)
                results.append({"success": False, "to": fields.get("toEmail"), "error": str(e)})

        sent = sum(1 for r in results if r.get("success"))
        return self.output(
            {"sent": sent, "failed": len(results) - sent, "results": results},
            sent=sent,
            failed=len(results) - sent,
        )

    def _body_format(self, node_definition: NodeDefinition) -> str:
        if node_definition.config.get("html") is True:
            return "html"
        body_format = self.get_parameter(node_definition, "bodyFormat", "plain")
        if body_format not in ("plain", "html", "markdown"):
            raise ValidationError(f"Unsupported body format: {body_format}", field="bodyFormat")
        return body_format

    async def _send_one(
        self,
        fields: dict[str, Any],
        from_email: str,
        body_format: str,
        smtp: dict[str, Any],
    ) -> dict[str, Any]:
        to_email = fields.get("toEmail")
        subject = fields.get("subject")
        if not to_email:
            raise ValidationError("toEmail is required", field="toEmail")
        if not subject:
            raise ValidationError("subject is required", field="subject")

        msg = build_message(
            str(from_email), str(to_email), str(subject), str(fields.get("body") or ""), body_format
        )
        await aiosmtplib.send(
            msg,
            hostname=smtp["hostname"],
            port=smtp["port"],
            username=smtp["username"],
            password=smtp["password"],
            use_tls=smtp["port"] == 465,
            start_tls=smtp["port"] == 587,
        )
        logger.info("Email sent to %s", to_email)
        return {"success": True, "to": to_email, "subject": subject, "messageId": msg.get("Message-ID")}
