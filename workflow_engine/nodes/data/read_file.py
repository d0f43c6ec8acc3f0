"""ReadFile and UploadFile nodes - resolve a file reference to bytes and parse it."""

from __future__ import annotations

import asyncio
import base64
import io
import json
import logging
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pandas as pd

from ...core.config import settings
from ...core.exceptions import ForbiddenError, StoredFileNotFoundError, ValidationError
from ..base import BaseNode

if TYPE_CHECKING:
    from ...engine.types import ExecutionContext, NodeDefinition, NodeOutput

logger = logging.getLogger(__name__)

EXTENSION_TYPES = {
    ".csv": "csv",
    ".tsv": "csv",
    ".xlsx": "excel",
    ".xls": "excel",
    ".json": "json",
    ".txt": "text",
    ".md": "text",
    ".log": "text",
    ".xml": "text",
    ".html": "text",
}


def detect_file_type(filename: str, mimetype: str | None = None) -> str:
    """Map a filename/mimetype to csv, excel, json, text or binary."""
    extension = Path(filename).suffix.lower()
    if extension in EXTENSION_TYPES:
        return EXTENSION_TYPES[extension]
    mimetype = mimetype or mimetypes.guess_type(filename)[0] or ""
    if mimetype == "text/csv":
        return "csv"
    if "spreadsheet" in mimetype or mimetype == "application/vnd.ms-excel":
        return "excel"
    if mimetype == "application/json":
        return "json"
    if mimetype.startswith("text/"):
        return "text"
    return "binary"


def _frame_to_records(frame: pd.DataFrame) -> list[dict[str, Any]]:
    """DataFrame rows as dicts with NaN mapped to None."""
    return frame.astype(object).where(pd.notna(frame), None).to_dict(orient="records")


def parse_content(content: bytes, file_type: str, filename: str = "", encoding: str = "utf-8") -> Any:
    """Parse file bytes by detected type."""
    if encoding == "base64":
        return base64.b64encode(content).decode("ascii")
    if file_type == "binary" or encoding == "binary":
        return {"base64": base64.b64encode(content).decode("ascii"), "size": len(content)}
    if file_type == "csv":
        separator = "\t" if filename.lower().endswith(".tsv") else ","
        return _frame_to_records(pd.read_csv(io.BytesIO(content), sep=separator))
    if file_type == "excel":
        return _frame_to_records(pd.read_excel(io.BytesIO(content)))

    text = content.decode(encoding or "utf-8")
    if file_type == "json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in {filename or 'file'}: {e}") from e
    return text


class ReadFileNode(BaseNode):
    """
    Read File node.

    Reads `fileId` through the files collaborator (ownership enforced) or a
    `filePath` from disk, then parses it by `fileType` (auto-detected by
    default). `operation` write/append writes `content` to `filePath`.
    When settings.file_base_dir is set, paths must resolve inside it.
    """

    supports_write = True

    @property
    def type(self) -> str:
        return "readFile"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        operation = self.get_parameter(node_definition, "operation", "read")

        if operation in ("write", "append") and self.supports_write:
            return await self._write(node_definition, input_data, append=operation == "append")
        if operation != "read":
            raise ValidationError(f"Unsupported file operation: {operation}", field="operation")

        file_type = self.get_parameter(node_definition, "fileType", "auto")
        encoding = self.get_parameter(node_definition, "encoding", "utf-8")
        file_id = self.get_parameter(node_definition, "fileId")
        file_path = self.get_parameter(node_definition, "filePath")

        if file_id:
            if context.file_service is None:
                raise ValidationError("No file service configured for fileId references", field="fileId")
            stored = await context.file_service.get_file_by_id(str(file_id), context.user_id)
            content = await context.file_service.get_file_content(str(file_id), context.user_id)
            filename, mimetype = stored.filename, stored.mimetype
        elif file_path:
            path = self._resolve_path(str(file_path))
            try:
                content = await asyncio.to_thread(path.read_bytes)
            except FileNotFoundError as e:
                raise StoredFileNotFoundError(str(file_path)) from e
            filename, mimetype = path.name, mimetypes.guess_type(path.name)[0]
        else:
            raise ValidationError(
                f'Node "{node_definition.id}" needs a fileId or filePath', field="fileId"
            )

        if file_type == "auto":
            file_type = detect_file_type(filename, mimetype)

        logger.debug("Parsing %s as %s (%d bytes)", filename, file_type, len(content))
        data = await asyncio.to_thread(parse_content, content, file_type, filename, encoding)

        return self.output(
            data,
            filename=filename,
            mimetype=mimetype,
            size=len(content),
            fileType=file_type,
        )

    async def _write(self, node_definition: NodeDefinition, input_data: Any, append: bool) -> NodeOutput:
        file_path = self.get_parameter(node_definition, "filePath")
        if not file_path:
            raise ValidationError("filePath is required to write a file", field="filePath")

        content = node_definition.config.get("content")
        if content is None:
            content = input_data
        text = content if isinstance(content, str) else json.dumps(content, default=str)

        path = self._resolve_path(str(file_path))

        def write() -> int:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a" if append else "w", encoding="utf-8") as f:
                return f.write(text)

        written = await asyncio.to_thread(write)
        return self.output(
            {"filePath": str(path), "bytesWritten": written, "operation": "append" if append else "write"}
        )

    def _resolve_path(self, file_path: str) -> Path:
        path = Path(file_path)
        if not settings.file_base_dir:
            return path

        base = Path(settings.file_base_dir).resolve()
        resolved = (path if path.is_absolute() else base / path).resolve()
        if resolved != base and base not in resolved.parents:
            raise ForbiddenError(
                f"Path outside of allowed directory: {file_path}", details={"filePath": file_path}
            )
        return resolved


class UploadFileNode(ReadFileNode):
    """Upload File node - reads an uploaded file by `fileId`. Read-only."""

    supports_write = False

    @property
    def type(self) -> str:
        return "uploadFile"
