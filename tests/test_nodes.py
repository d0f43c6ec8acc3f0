"""Node handlers called directly with a resolved node definition."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from workflow_engine.core.config import settings
from workflow_engine.core.exceptions import (
    CodeExecutionError,
    ForbiddenError,
    UnsupportedProviderError,
    ValidationError,
)
from workflow_engine.engine.types import ExecutionContext, NodeDefinition, NodeOutput
from workflow_engine.nodes.ai.sentiment import analyze_sentiment
from workflow_engine.nodes.conditions import evaluate_operator, loose_equals
from workflow_engine.nodes.data.read_file import detect_file_type
from workflow_engine.services.file_service import LocalFileService

from .helpers import build_workflow, edge, node


def make_context(
    http_client: httpx.AsyncClient | None = None,
    node_outputs: dict[str, NodeOutput] | None = None,
    **kwargs: Any,
) -> ExecutionContext:
    workflow = build_workflow([node("n", "set")])
    context = ExecutionContext(
        workflow=workflow,
        execution_id="exec-1",
        user_id=kwargs.pop("user_id", "user-1"),
        input_data={},
        http_client=http_client,
        **kwargs,
    )
    context.node_outputs.update(node_outputs or {})
    return context


async def execute(registry, node_type: str, input_data: Any = None, context=None, **config):
    handler = registry.get(node_type)
    assert handler is not None, node_type
    definition = NodeDefinition(id="n", type=node_type, config=config)
    return await handler.execute(context or make_context(), definition, input_data)


# --- triggers ---


@pytest.mark.asyncio
@pytest.mark.parametrize("node_type", ["trigger", "manualTrigger", "webhook", "schedule"])
async def test_triggers_pass_input_through(registry, node_type):
    output = await execute(registry, node_type, {"hello": "world"})
    assert output.data == {"hello": "world"}


@pytest.mark.asyncio
async def test_triggers_synthesize_payload_without_input(registry):
    manual = await execute(registry, "trigger", {})
    scheduled = await execute(registry, "schedule", None)

    assert manual.data["triggered"] is True
    assert "timestamp" in manual.data
    assert "scheduledAt" in scheduled.data


# --- conditions ---


@pytest.mark.parametrize(
    "operator, left, right, expected",
    [
        ("equals", "5", 5, True),
        ("equals", "abc", "abd", False),
        ("notEquals", 1, 2, True),
        ("contains", "hello world", "world", True),
        ("contains", [1, 2, 3], "2", True),
        ("notContains", "hello", "x", True),
        ("startsWith", "workflow", "work", True),
        ("endsWith", "workflow", "flow", True),
        ("greaterThan", "10", 9, True),
        ("lessThan", 3, 2, False),
        ("greaterThanOrEqual", 2, 2, True),
        ("lessThanOrEqual", 1, 2, True),
        ("isEmpty", "", None, True),
        ("isEmpty", [], None, True),
        ("isNotEmpty", {"a": 1}, None, True),
        ("regex", "order-123", r"^order-\d+$", True),
        ("regex", "x", "[", False),
        ("unknownOperator", 1, 1, False),
    ],
)
def test_operators(operator, left, right, expected):
    assert evaluate_operator(operator, left, right) is expected


def test_loose_equality():
    assert loose_equals(1, "1.0")
    assert loose_equals(True, True)
    assert not loose_equals(None, "")


# --- flow ---


@pytest.mark.asyncio
async def test_if_or_combination(registry):
    output = await execute(
        registry,
        "if",
        {"status": "open", "priority": 1},
        conditions=[
            {"field": "status", "operator": "equals", "value": "closed"},
            {"field": "priority", "operator": "lessThan", "value": 2},
        ],
        combineOperation="OR",
    )
    assert output.branch == "true"
    assert output.data == {"status": "open", "priority": 1}


@pytest.mark.asyncio
async def test_switch_rules_use_named_handles(registry):
    rules = [
        {"field": "kind", "operator": "equals", "value": "a", "output": "alpha"},
        {"field": "kind", "operator": "equals", "value": "b"},
    ]

    alpha = await execute(registry, "switch", {"kind": "a"}, rules=rules)
    second = await execute(registry, "switch", {"kind": "b"}, rules=rules)
    neither = await execute(registry, "switch", {"kind": "c"}, rules=rules)

    assert (alpha.branch, alpha.metadata["output"]) == ("alpha", 0)
    assert (second.branch, second.metadata["output"]) == ("1", 1)
    assert (neither.branch, neither.metadata["output"]) == ("fallback", -1)


@pytest.mark.asyncio
async def test_switch_expression_mode(registry):
    output = await execute(
        registry, "switch", {"n": 12}, mode="expression", expression="'big' if input['n'] > 10 else 'small'"
    )
    assert output.branch == "big"


@pytest.mark.asyncio
async def test_merge_modes(registry):
    context = make_context()
    context.workflow = build_workflow(
        [node("a", "set"), node("b", "set"), node("n", "merge")],
        [edge("a", "n"), edge("b", "n")],
    )
    context.node_outputs.update(
        {"a": NodeOutput(data={"id": 1, "a": 1}), "b": NodeOutput(data={"id": 2, "b": 2})}
    )

    appended = await execute(registry, "merge", None, context, mode="append")
    merged = await execute(registry, "merge", None, context, mode="merge")
    matched = await execute(registry, "merge", None, context, mode="keepKeyMatches")

    assert appended.data == [{"id": 1, "a": 1}, {"id": 2, "b": 2}]
    assert merged.data == {"id": 2, "a": 1, "b": 2}
    assert matched.data == {"id": 2}


@pytest.mark.asyncio
async def test_loop_batches(registry):
    output = await execute(registry, "loop", [1, 2, 3, 4, 5], batchSize=2)
    assert output.data == [[1, 2], [3, 4], [5]]
    assert output.metadata["batchCount"] == 3


@pytest.mark.asyncio
async def test_delay_waits_and_passes_through(registry):
    with patch("workflow_engine.nodes.flow.wait.asyncio.sleep", new=AsyncMock()) as sleep:
        output = await execute(registry, "delay", {"x": 1}, amount=2, unit="seconds")

    sleep.assert_awaited_once_with(2.0)
    assert output.data == {"x": 1}
    assert output.metadata["waitedMs"] == 2000


# --- data ---


@pytest.mark.asyncio
async def test_set_delete_mode(registry):
    output = await execute(registry, "set", [{"a": 1, "b": 2}, {"a": 3}], mode="delete", keys="b")
    assert output.data == [{"a": 1}, {"a": 3}]


@pytest.mark.asyncio
async def test_filter_sort_limit(registry):
    items = [{"name": "c", "age": 40}, {"name": "a", "age": 20}, {"name": "b"}, {"name": "d", "age": 35}]

    adults = await execute(registry, "filter", items, filterBy="age", operator="greaterThan", filterValue=30)
    by_age = await execute(registry, "sort", items, sortBy="age", order="descending")
    page = await execute(registry, "limit", items, maxItems=2, offset=1)

    assert [i["name"] for i in adults.data] == ["c", "d"]
    assert [i["name"] for i in by_age.data] == ["c", "d", "a", "b"]
    assert [i["name"] for i in page.data] == ["a", "b"]


@pytest.mark.asyncio
async def test_json_parse_operations(registry):
    parsed = await execute(registry, "jsonParse", {"raw": '{"a": {"b": [5]}}'}, field="raw")
    extracted = await execute(registry, "jsonParse", parsed.data, operation="extract", jsonPath="$.a.b[0]")
    text = await execute(registry, "jsonParse", {"a": 1}, operation="stringify")

    assert parsed.data == {"a": {"b": [5]}}
    assert extracted.data == 5
    assert json.loads(text.data) == {"a": 1}

    with pytest.raises(ValidationError):
        await execute(registry, "jsonParse", "{not json", operation="parse")


@pytest.mark.asyncio
async def test_data_mapper_and_aggregate(registry):
    rows = [{"user": {"name": "a"}, "team": "x", "score": 2}, {"user": {"name": "b"}, "team": "y", "score": "4"}]

    mapped = await execute(registry, "dataMapper", rows, mappings={"who": "user.name"})
    total = await execute(registry, "aggregate", rows, operation="sum", field="score")
    average = await execute(registry, "aggregate", rows, operation="average", field="score")
    groups = await execute(registry, "aggregate", rows, operation="groupBy", groupByField="team")

    assert mapped.data == [{"who": "a"}, {"who": "b"}]
    assert total.data == {"sum": 6}
    assert average.data == {"average": 3}
    assert set(groups.data) == {"x", "y"}


@pytest.mark.asyncio
async def test_read_file_parses_csv_by_file_id(registry, tmp_path):
    csv_path = tmp_path / "people.csv"
    csv_path.write_text("name,age\nann,31\nbob,\n")
    files = LocalFileService(str(tmp_path))
    stored = files.register("user-1", str(csv_path), "people.csv")

    context = make_context(file_service=files)
    output = await execute(registry, "readFile", None, context, fileId=stored.id)

    assert output.data == [{"name": "ann", "age": 31.0}, {"name": "bob", "age": None}]
    assert output.metadata["fileType"] == "csv"

    other_user = make_context(file_service=files, user_id="user-2")
    with pytest.raises(ForbiddenError):
        await execute(registry, "uploadFile", None, other_user, fileId=stored.id)


@pytest.mark.asyncio
async def test_read_file_write_then_read(registry, tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "file_base_dir", str(tmp_path))

    await execute(registry, "readFile", {"k": "v"}, operation="write", filePath="out/data.json")
    output = await execute(registry, "readFile", None, filePath="out/data.json")

    assert output.data == {"k": "v"}
    with pytest.raises(ForbiddenError):
        await execute(registry, "readFile", None, filePath="../escape.txt")


def test_detect_file_type():
    assert detect_file_type("report.xlsx") == "excel"
    assert detect_file_type("notes.md") == "text"
    assert detect_file_type("blob", "application/json") == "json"
    assert detect_file_type("image.png") == "binary"


# --- http ---


@pytest.mark.asyncio
async def test_http_request_auth_query_and_body(registry, mock_http):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"created": True})

    context = make_context(http_client=mock_http(handler))
    output = await execute(
        registry,
        "httpRequest",
        {"name": "widget"},
        context,
        url="https://api.example.com/widgets",
        method="post",
        headers=[{"name": "X-Trace", "value": "abc"}],
        queryParameters={"dryRun": "true"},
        authentication="apiKey",
        apiKeyName="api_key",
        apiKeyValue="secret",
        apiKeyIn="query",
    )

    request = seen[0]
    assert request.method == "POST"
    assert request.headers["X-Trace"] == "abc"
    assert request.url.params["dryRun"] == "true"
    assert request.url.params["api_key"] == "secret"
    assert json.loads(request.content) == {"name": "widget"}
    assert output.data == {"created": True}
    assert output.metadata["statusCode"] == 201
    assert output.metadata["attempt"] == 1


@pytest.mark.asyncio
async def test_http_request_requires_url(registry):
    with pytest.raises(ValidationError):
        await execute(registry, "httpRequest", {}, method="GET")


@pytest.mark.asyncio
async def test_http_request_without_retry_fails_fast(registry, mock_http):
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    context = make_context(http_client=mock_http(handler))
    with pytest.raises(httpx.HTTPStatusError):
        await execute(registry, "httpRequest", None, context, url="https://api.example.com/x")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_http_request_raises_last_error_after_retries(registry, mock_http):
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503 if len(calls) == 1 else 502)

    context = make_context(http_client=mock_http(handler))
    with pytest.raises(httpx.HTTPStatusError) as excinfo:
        await execute(
            registry,
            "httpRequest",
            None,
            context,
            url="https://api.example.com/x",
            retryOnFail=True,
            retryCount=1,
        )
    assert len(calls) == 2
    assert excinfo.value.response.status_code == 502


# --- code ---


@pytest.mark.asyncio
async def test_code_node_runs_in_sandbox(registry, monkeypatch):
    monkeypatch.setattr(settings, "code_memory_limit_mb", 0)
    code = "log('count', len(items))\nreturn [i['n'] * 2 for i in items]"

    output = await execute(registry, "code", [{"n": 1}, {"n": 2}], code=code)

    assert output.data == [2, 4]
    assert output.metadata["logs"] == ["count 2"]


@pytest.mark.asyncio
async def test_code_node_has_no_imports(registry, monkeypatch):
    monkeypatch.setattr(settings, "code_memory_limit_mb", 0)
    with pytest.raises(CodeExecutionError):
        await execute(registry, "function", {}, functionCode="import os\nreturn os.getcwd()")


@pytest.mark.asyncio
async def test_code_node_times_out(registry, monkeypatch):
    monkeypatch.setattr(settings, "code_memory_limit_mb", 0)
    with pytest.raises(CodeExecutionError, match="timed out"):
        await execute(registry, "code", {}, code="while True:\n    pass", timeout=1)


# --- integrations ---


@pytest.mark.asyncio
async def test_email_per_item_report(registry):
    send = AsyncMock(side_effect=[None, ConnectionError("refused")])
    with patch("workflow_engine.nodes.integrations.send_email.aiosmtplib.send", new=send):
        output = await execute(
            registry,
            "email",
            [{"email": "a@example.com"}, {"email": "b@example.com"}],
            smtpHost="smtp.example.com",
            fromEmail="bot@example.com",
            toEmail="{{$item.email}}",
            subject="Hello",
            body="**hi**",
            bodyFormat="markdown",
        )

    assert send.await_count == 2
    assert output.data["sent"] == 1
    assert output.data["failed"] == 1
    assert output.data["results"][0]["to"] == "a@example.com"
    assert "refused" in output.data["results"][1]["error"]


@pytest.mark.asyncio
async def test_email_requires_smtp_host(registry, monkeypatch):
    monkeypatch.setattr(settings, "smtp_host", None)
    with pytest.raises(ValidationError):
        await execute(registry, "sendEmail", {}, toEmail="a@example.com", subject="s")


@pytest.mark.asyncio
async def test_slack_token_error_is_a_failure(registry, mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer xoxb-1"
        return httpx.Response(200, json={"ok": False, "error": "channel_not_found"})

    context = make_context(http_client=mock_http(handler))
    with pytest.raises(Exception, match="channel_not_found"):
        await execute(
            registry, "slack", {}, context, authentication="token", botToken="xoxb-1", channel="#x", text="hi"
        )


@pytest.mark.asyncio
async def test_slack_webhook(registry, mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content) == {"text": "deploy done"}
        return httpx.Response(200, text="ok")

    context = make_context(http_client=mock_http(handler))
    output = await execute(
        registry, "slack", {}, context, webhookUrl="https://hooks.slack.com/services/T/B/X", text="deploy done"
    )
    assert output.data["success"] is True


@pytest.mark.asyncio
async def test_database_placeholder(registry):
    output = await execute(
        registry, "database", {}, query="select 1", host="db", database="app", username="u"
    )
    assert output.data == []
    assert output.metadata["implemented"] is False

    with pytest.raises(ValidationError):
        await execute(registry, "database", {}, host="db")


# --- ai ---


def test_builtin_sentiment():
    assert analyze_sentiment("I love this, great work")["sentiment"] == "positive"
    assert analyze_sentiment("terrible and slow")["sentiment"] == "negative"
    assert analyze_sentiment("the sky")["score"] == 0.0


@pytest.mark.asyncio
async def test_ai_sentiment_builtin_provider(registry):
    output = await execute(registry, "aiSentiment", {"text": "awesome, thanks"}, detailedAnalysis=True)
    assert output.data["sentiment"] == "positive"
    assert output.data["positiveWords"] == ["awesome", "thanks"]


@pytest.mark.asyncio
async def test_ai_chat_through_ollama(registry, mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        assert request.url.path == "/api/chat"
        assert payload["messages"][-1] == {"role": "user", "content": "Say hi"}
        return httpx.Response(200, json={"model": "llama3", "message": {"content": "hi"}})

    context = make_context(http_client=mock_http(handler))
    output = await execute(
        registry, "aiChat", None, context, provider="ollama", model="llama3", prompt="Say hi"
    )
    assert output.data["response"] == "hi"
    assert output.data["provider"] == "ollama"


@pytest.mark.asyncio
async def test_ai_chat_per_item_prompts(registry):
    from workflow_engine.engine.llm_provider import LLMResponse

    fake = AsyncMock(side_effect=lambda **kw: LLMResponse(text=kw["messages"][-1]["content"], model="m", provider="openai"))
    with patch("workflow_engine.nodes.ai.base.call_llm", new=fake):
        output = await execute(
            registry, "aiChat", [{"q": "one"}, {"q": "two"}], provider="openai", prompt="Echo {{$item.q}}"
        )
    assert [r["response"] for r in output.data] == ["Echo one", "Echo two"]


@pytest.mark.asyncio
async def test_ai_unknown_provider(registry):
    with pytest.raises(UnsupportedProviderError):
        await execute(registry, "aiTextGeneration", None, provider="nope", prompt="x")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "reply, sentiment",
    [('"positive"', "positive"), ('["negative"]', ["negative"]), ("Neutral", "neutral")],
)
async def test_ai_sentiment_reply_that_is_not_an_object(registry, reply, sentiment):
    from workflow_engine.engine.llm_provider import LLMResponse

    fake = AsyncMock(return_value=LLMResponse(text=reply, model="m", provider="openai"))
    with patch("workflow_engine.nodes.ai.base.call_llm", new=fake):
        output = await execute(
            registry, "aiSentiment", {"text": "fine"}, provider="openai", detailedAnalysis=True
        )
    assert output.data["sentiment"] == sentiment
    assert output.data["raw"] == reply


@pytest.mark.asyncio
async def test_ai_text_generation_per_item_prompts(registry):
    from workflow_engine.engine.llm_provider import LLMResponse

    fake = AsyncMock(side_effect=lambda **kw: LLMResponse(text=kw["messages"][-1]["content"], model="m", provider="openai"))
    with patch("workflow_engine.nodes.ai.base.call_llm", new=fake):
        output = await execute(
            registry,
            "aiTextGeneration",
            [{"topic": "cats"}, {"topic": "dogs"}],
            provider="openai",
            prompt="Write about {{$item.topic}}",
            contentType="summary",
        )

    assert [r["response"] for r in output.data] == ["Write about cats", "Write about dogs"]
    assert {r["contentType"] for r in output.data} == {"summary"}
    assert output.metadata["itemCount"] == 2
    assert fake.await_count == 2
