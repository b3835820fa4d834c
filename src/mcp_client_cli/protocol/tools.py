"""Tool descriptors and tools/call result decoding.

Converts the raw payloads of tools/list and tools/call responses into
typed, immutable values.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from mcp_client_cli.errors import ProtocolError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolDescriptor:
    """A tool advertised by the server."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=lambda: {"type": "object"})
    title: str | None = None
    annotations: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> ToolDescriptor:
        """Parse one entry of a tools/list result.

        Args:
            raw: Tool definition in MCP format.

        Returns:
            ToolDescriptor instance.

        Raises:
            ProtocolError: If the entry is not an object with a name.
        """
        if not isinstance(raw, dict):
            raise ProtocolError("Tool definition must be an object")
        name = raw.get("name")
        if not isinstance(name, str) or not name:
            raise ProtocolError("Tool definition is missing a name")

        schema = raw.get("inputSchema")
        annotations = raw.get("annotations")
        return cls(
            name=name,
            description=raw.get("description") or "",
            input_schema=schema if isinstance(schema, dict) else {"type": "object"},
            title=raw.get("title"),
            annotations=annotations if isinstance(annotations, dict) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP tool format.

        Returns:
            Dictionary in MCP tools/list format.
        """
        tool: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }
        if self.title is not None:
            tool["title"] = self.title
        if self.annotations is not None:
            tool["annotations"] = self.annotations
        return tool


@dataclass(frozen=True)
class ToolsListResult:
    """One page of a tools/list response."""

    tools: list[ToolDescriptor]
    next_cursor: str | None = None

    @classmethod
    def from_dict(cls, result: Any) -> ToolsListResult:
        """Parse a tools/list result, keeping server order.

        Raises:
            ProtocolError: If the result has no tools array.
        """
        if not isinstance(result, dict) or not isinstance(result.get("tools"), list):
            raise ProtocolError("tools/list result must contain a tools array")
        cursor = result.get("nextCursor")
        return cls(
            tools=[ToolDescriptor.from_dict(tool) for tool in result["tools"]],
            next_cursor=cursor if isinstance(cursor, str) and cursor else None,
        )


@dataclass(frozen=True)
class TextContent:
    """Plain text content item."""

    text: str
    kind: str = field(default="text", init=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP content format."""
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class UriContent:
    """Reference to a resource by URI."""

    uri: str
    mime_type: str | None = None
    kind: str = field(default="uri", init=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP content format."""
        item: dict[str, Any] = {"type": "uri", "uri": self.uri}
        if self.mime_type is not None:
            item["mimeType"] = self.mime_type
        return item


@dataclass(frozen=True)
class OpaqueContent:
    """Content item of a type this client does not interpret.

    ``fields`` holds the raw item exactly as received, ``type`` included.
    """

    type: str | None
    fields: dict[str, Any]
    kind: str = field(default="opaque", init=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert back to the original wire shape."""
        return dict(self.fields)


ContentItem = TextContent | UriContent | OpaqueContent


def decode_content_item(raw: Any) -> ContentItem:
    """Classify one raw content item by its ``type`` field.

    Never raises: anything that does not fit a known shape is kept as an
    opaque item.

    Args:
        raw: Content item as received.

    Returns:
        Typed content item.
    """
    if not isinstance(raw, dict):
        logger.warning("Content item is not an object, keeping it opaque: %r", raw)
        return OpaqueContent(type=None, fields={"value": raw})

    item_type = raw.get("type")
    if item_type == "text":
        text = raw.get("text")
        if isinstance(text, str):
            return TextContent(text=text)
        logger.warning("Text content item without a string 'text' field, keeping it opaque")
    elif item_type == "uri":
        uri = raw.get("uri")
        mime_type = raw.get("mimeType")
        if isinstance(uri, str) and (mime_type is None or isinstance(mime_type, str)):
            return UriContent(uri=uri, mime_type=mime_type)
        logger.warning("URI content item without a string 'uri' field, keeping it opaque")

    return OpaqueContent(type=item_type if isinstance(item_type, str) else None, fields=dict(raw))


def decode_content(items: Sequence[Any]) -> list[ContentItem]:
    """Decode a content array, preserving order."""
    return [decode_content_item(item) for item in items]


@dataclass(frozen=True)
class ToolCallResult(Sequence[ContentItem]):
    """Decoded tools/call result.

    Behaves as the sequence of its content items. ``is_error`` is the
    server's tool-level failure flag, distinct from a JSON-RPC error.
    """

    content: tuple[ContentItem, ...] = ()
    is_error: bool = False
    structured_content: Any | None = None

    def __getitem__(self, index: int | slice) -> ContentItem | tuple[ContentItem, ...]:
        return self.content[index]

    def __len__(self) -> int:
        return len(self.content)

    def __iter__(self) -> Iterator[ContentItem]:
        return iter(self.content)

    @property
    def text(self) -> str:
        """Concatenate all text items, one per line."""
        return "\n".join(item.text for item in self.content if isinstance(item, TextContent))


def decode_result(result: Any) -> ToolCallResult:
    """Decode the raw ``result`` of a tools/call response.

    Args:
        result: Result payload as received.

    Returns:
        ToolCallResult with content items in received order.

    Raises:
        ProtocolError: If the result is not an object or its content is
            not an array.
    """
    if not isinstance(result, dict):
        raise ProtocolError("tools/call result must be an object")

    content = result.get("content", [])
    if not isinstance(content, list):
        raise ProtocolError("tools/call result content must be an array")

    return ToolCallResult(
        content=tuple(decode_content(content)),
        is_error=bool(result.get("isError", False)),
        structured_content=result.get("structuredContent"),
    )
