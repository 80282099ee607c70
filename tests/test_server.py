from systools.mcp.registry import ToolName


def by_id(responses):
    return {r["id"]: r for r in responses}


def test_initialize_handshake(run_server, router):
    responses = run_server(
        {"jsonrpc": "2.0", "id": 1, "method": "initialize",
         "params": {"protocolVersion": "2024-11-05", "capabilities": {}}},
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
    )

    assert len(responses) == 1
    result = responses[0]["result"]
    assert result["protocolVersion"] == "2024-11-05"
    assert result["capabilities"] == {"tools": {}}
    assert result["serverInfo"] == {"name": "sys-tools", "version": "1.0.0"}
    assert router.ctx.initialized is True


def test_tools_list_advertises_full_catalogue(run_server):
    (response,) = run_server({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})

    tools = response["result"]["tools"]
    assert [t["name"] for t in tools] == [n.value for n in ToolName]
    for tool in tools:
        assert tool["description"]
        assert tool["inputSchema"]["type"] == "object"


def test_unknown_method_is_method_not_found(run_server):
    (response,) = run_server({"jsonrpc": "2.0", "id": 3, "method": "resources/list"})
    assert response["error"]["code"] == -32601
    assert "resources/list" in response["error"]["message"]


def test_request_without_method_is_invalid(run_server):
    (response,) = run_server({"jsonrpc": "2.0", "id": 4})
    assert response["error"]["code"] == -32600


def test_ping(run_server):
    (response,) = run_server({"jsonrpc": "2.0", "id": 5, "method": "ping"})
    assert response["result"] == {}


def test_notifications_get_no_response(run_server):
    responses = run_server(
        {"jsonrpc": "2.0", "method": "notifications/cancelled", "params": {"requestId": 1}},
        {"jsonrpc": "2.0", "method": "something/else"},
    )
    assert responses == []


def test_malformed_line_is_skipped(run_server):
    responses = run_server(
        "{this is not json",
        "[1, 2, 3]",
        {"jsonrpc": "2.0", "id": 6, "method": "ping"},
    )
    assert [r["id"] for r in responses] == [6]


def test_client_responses_are_ignored(run_server):
    responses = run_server({"jsonrpc": "2.0", "id": "srv-9", "result": {}})
    assert responses == []


def test_unknown_tool_is_error_content(run_server):
    (response,) = run_server({"jsonrpc": "2.0", "id": 7, "method": "tools/call",
                              "params": {"name": "Teleport", "arguments": {}}})
    assert response["result"]["isError"] is True
    assert response["result"]["content"][0]["text"] == "Unknown tool: Teleport"


def test_missing_required_argument(run_server):
    (response,) = run_server({"jsonrpc": "2.0", "id": 8, "method": "tools/call",
                              "params": {"name": "Read", "arguments": {}}})
    assert response["result"]["isError"] is True
    assert "file_path" in response["result"]["content"][0]["text"]


def test_arguments_must_be_an_object(run_server):
    (response,) = run_server({"jsonrpc": "2.0", "id": 9, "method": "tools/call",
                              "params": {"name": "Bash", "arguments": ["echo", "hi"]}})
    assert response["result"]["isError"] is True


def test_tool_call_success_has_no_error_flag(run_server):
    (response,) = run_server({"jsonrpc": "2.0", "id": 10, "method": "tools/call",
                              "params": {"name": "Bash", "arguments": {"command": "echo hello"}}})
    result = response["result"]
    assert "isError" not in result
    assert result["content"] == [{"type": "text", "text": "hello\n"}]


def test_every_request_gets_exactly_one_response(run_server):
    messages = []
    for i in range(12):
        if i % 3 == 0:
            messages.append({"jsonrpc": "2.0", "id": i, "method": "ping"})
        elif i % 3 == 1:
            messages.append({"jsonrpc": "2.0", "id": i, "method": "tools/call",
                             "params": {"name": "Bash", "arguments": {"command": f"echo {i}"}}})
        else:
            messages.append({"jsonrpc": "2.0", "id": i, "method": "nope"})
        messages.append({"jsonrpc": "2.0", "method": "notifications/progress"})

    responses = run_server(*messages)

    assert sorted(r["id"] for r in responses) == list(range(12))
    results = by_id(responses)
    assert results[4]["result"]["content"][0]["text"] == "4\n"
    assert results[5]["error"]["code"] == -32601


def test_slow_call_does_not_block_other_requests(run_server):
    responses = run_server(
        {"jsonrpc": "2.0", "id": "slow", "method": "tools/call",
         "params": {"name": "Bash", "arguments": {"command": "sleep 1; echo done"}}},
        {"jsonrpc": "2.0", "id": "fast", "method": "ping"},
    )
    assert [r["id"] for r in responses] == ["fast", "slow"]
    assert by_id(responses)["slow"]["result"]["content"][0]["text"] == "done\n"


def test_todos_and_plan_mode_persist_across_calls(run_server, router):
    run_server(
        {"jsonrpc": "2.0", "id": 1, "method": "tools/call",
         "params": {"name": "TodoWrite", "arguments": {"todos": [
             {"content": "Ship it", "status": "in_progress", "activeForm": "Shipping it"}]}}},
        {"jsonrpc": "2.0", "id": 2, "method": "tools/call",
         "params": {"name": "EnterPlanMode", "arguments": {}}},
    )
    assert [t.content for t in router.ctx.todos] == ["Ship it"]
    assert router.ctx.plan_mode is True


def test_tool_call_notification_runs_without_response(run_server, tmp_path):
    target = tmp_path / "fired.txt"
    responses = run_server({"jsonrpc": "2.0", "method": "tools/call",
                            "params": {"name": "Write",
                                       "arguments": {"file_path": str(target), "content": "side effect"}}})

    assert responses == []
    assert target.read_text() == "side effect"


def test_failing_tool_call_notification_is_silent(run_server):
    responses = run_server(
        {"jsonrpc": "2.0", "method": "tools/call", "params": {"name": "Teleport"}},
        {"jsonrpc": "2.0", "method": "tools/call", "params": ["not", "an", "object"]},
        {"jsonrpc": "2.0", "id": 1, "method": "ping"},
    )
    assert [r["id"] for r in responses] == [1]
