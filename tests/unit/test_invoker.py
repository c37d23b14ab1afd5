"""
Unit tests for toolwire.core.invoker - argument coercion and tool dispatch.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from toolwire.core.catalog import ToolCatalog
from toolwire.core.invoker import ToolInvoker, coerce_arguments
from toolwire.exceptions import (
    InvalidArgumentError,
    MissingArgumentError,
    NotConnectedError,
    TransportError,
    UnknownToolError,
)
from toolwire.models import Tool

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def record_tool():
    return Tool.from_wire(
        {
            "name": "create_record",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "count": {"type": "number"},
                    "limit": {"type": "integer"},
                    "verbose": {"type": "boolean"},
                    "fields": {"type": "object"},
                    "tags": {"type": "array"},
                },
                "required": ["title"],
            },
        }
    )


@pytest.fixture
def transport():
    mock = AsyncMock()
    mock.call_tool.return_value = {"content": [{"type": "text", "text": "done"}]}
    return mock


@pytest.fixture
def connection(record_tool, transport):
    return SimpleNamespace(catalog=ToolCatalog([record_tool]), transport=transport)


@pytest.fixture
def invoker(connection):
    return ToolInvoker(connection)


# ============================================================================
# coerce_arguments
# ============================================================================


class TestCoerceArguments:
    def test_number_from_text(self, record_tool):
        args = coerce_arguments(record_tool, {"title": "t", "count": "42"})
        assert args["count"] == 42
        assert isinstance(args["count"], int)

    def test_fractional_number(self, record_tool):
        assert coerce_arguments(record_tool, {"title": "t", "count": "2.5"})["count"] == 2.5

    def test_invalid_number(self, record_tool):
        with pytest.raises(InvalidArgumentError) as exc_info:
            coerce_arguments(record_tool, {"title": "t", "count": "many"})
        assert exc_info.value.argument == "count"

    @pytest.mark.parametrize("raw", ["nan", "inf", "-inf"])
    def test_non_finite_number_rejected(self, record_tool, raw):
        with pytest.raises(InvalidArgumentError):
            coerce_arguments(record_tool, {"title": "t", "count": raw})

    def test_integer_rejects_fraction(self, record_tool):
        with pytest.raises(InvalidArgumentError):
            coerce_arguments(record_tool, {"title": "t", "limit": "1.5"})

    @pytest.mark.parametrize(("raw", "expected"), [("true", True), ("TRUE", True), ("yes", False)])
    def test_boolean(self, record_tool, raw, expected):
        assert coerce_arguments(record_tool, {"title": "t", "verbose": raw})["verbose"] is expected

    def test_object_parsed_from_json(self, record_tool):
        args = coerce_arguments(record_tool, {"title": "t", "fields": '{"a": 1}'})
        assert args["fields"] == {"a": 1}

    def test_unparsable_object_passed_as_text(self, record_tool):
        args = coerce_arguments(record_tool, {"title": "t", "fields": "not json"})
        assert args["fields"] == "not json"

    def test_array_parsed_from_json(self, record_tool):
        assert coerce_arguments(record_tool, {"title": "t", "tags": '["a", "b"]'})["tags"] == [
            "a",
            "b",
        ]

    def test_typed_values_pass_through(self, record_tool):
        args = coerce_arguments(record_tool, {"title": "t", "count": 7, "verbose": False})
        assert args == {"title": "t", "count": 7, "verbose": False}

    def test_missing_required(self, record_tool):
        with pytest.raises(MissingArgumentError) as exc_info:
            coerce_arguments(record_tool, {"count": "1"})
        assert exc_info.value.argument == "title"
        assert exc_info.value.tool_name == "create_record"

    def test_none_counts_as_absent(self, record_tool):
        with pytest.raises(MissingArgumentError):
            coerce_arguments(record_tool, {"title": None})

    def test_absent_optional_omitted(self, record_tool):
        assert coerce_arguments(record_tool, {"title": "t", "count": None}) == {"title": "t"}

    def test_extra_arguments_pass_through(self, record_tool):
        args = coerce_arguments(record_tool, {"title": "t", "unexpected": "x"})
        assert args == {"title": "t", "unexpected": "x"}

    def test_required_without_declared_property(self):
        tool = Tool(name="odd", required=frozenset({"token"}))
        with pytest.raises(MissingArgumentError):
            coerce_arguments(tool, {})
        assert coerce_arguments(tool, {"token": "abc"}) == {"token": "abc"}

    def test_input_not_mutated(self, record_tool):
        raw = {"title": "t", "count": "3"}
        coerce_arguments(record_tool, raw)
        assert raw == {"title": "t", "count": "3"}


# ============================================================================
# ToolInvoker
# ============================================================================


class TestToolInvoker:
    async def test_invoke_sends_coerced_arguments(self, invoker, transport):
        result = await invoker.invoke("create_record", {"title": "t", "count": "42"})

        transport.call_tool.assert_awaited_once_with("create_record", {"title": "t", "count": 42})
        assert result.tool_name == "create_record"
        assert result.text == "done"
        assert result.success

    async def test_unknown_tool_sends_nothing(self, invoker, transport):
        with pytest.raises(UnknownToolError) as exc_info:
            await invoker.invoke("nonexistent_tool", {})

        assert exc_info.value.tool_name == "nonexistent_tool"
        transport.call_tool.assert_not_awaited()

    async def test_missing_argument_sends_nothing(self, invoker, transport):
        with pytest.raises(MissingArgumentError):
            await invoker.invoke("create_record", {})
        transport.call_tool.assert_not_awaited()

    async def test_server_error_flag(self, invoker, transport):
        transport.call_tool.return_value = {
            "content": [{"type": "text", "text": "bad input"}],
            "isError": True,
        }
        result = await invoker.invoke("create_record", {"title": "t"})
        assert result.is_error
        assert result.text == "bad input"

    async def test_transport_error_tagged_with_tool(self, invoker, transport):
        transport.call_tool.side_effect = TransportError("Unexpected EOF from server")

        with pytest.raises(TransportError) as exc_info:
            await invoker.invoke("create_record", {"title": "t"})

        assert exc_info.value.tool_name == "create_record"
        assert "(tool: create_record)" in str(exc_info.value)

    async def test_not_connected(self, connection):
        connection.transport = None
        invoker = ToolInvoker(connection)

        with pytest.raises(NotConnectedError):
            await invoker.invoke("create_record", {"title": "t"})

    def test_prepare(self, invoker):
        tool, arguments = invoker.prepare("create_record", {"title": "t", "verbose": "true"})
        assert tool.name == "create_record"
        assert arguments == {"title": "t", "verbose": True}
