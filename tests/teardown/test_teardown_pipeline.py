from relaychain.config.models import TeardownRequest
from relaychain.teardown.pipeline import TeardownPipeline
from relaychain.utils.cancel import CancelToken

A, B = "10.0.0.1", "10.0.0.2"


def _request(*addresses):
    return TeardownRequest.model_validate([{"ip": a, "password": "pw"} for a in addresses])


def test_unreachable_node_skipped_other_reset(make_pipeline, connector_factory):
    connector = connector_factory(unreachable={A})
    result = make_pipeline(TeardownPipeline, connector).run(_request(A, B))
    response = result.to_teardown_response()

    assert response["status"] == "reset_complete"
    assert [r["address"] for r in response["results"]] == [A, B]
    assert response["results"][0]["status"] == "skipped"
    assert "failed to SSH" in response["results"][0]["message"]
    assert response["results"][1] == {"address": B, "status": "success", "message": "reset complete"}


def test_strict_teardown_reports_error(make_pipeline, connector_factory):
    connector = connector_factory(unreachable={A})
    result = make_pipeline(TeardownPipeline, connector, strict=True).run(_request(A, B))
    assert result.to_teardown_response()["status"] == "error"


def test_runs_full_plan_in_order(make_pipeline, connector):
    pipeline = make_pipeline(TeardownPipeline, connector)
    pipeline.run(_request(A))

    session = connector.sessions[A][0]
    assert len(session.commands) == len(pipeline.plan())
    joined = session.joined()
    assert joined.index("docker-compose down") < joined.index("apt-get purge")
    assert joined.index("apt-get purge") < joined.index("iptables -F")
    assert "rm -rf -- /etc/shadowsocks-libev/config.json" in joined
    assert "net.ipv4.ip_forward=0" in joined
    assert session.closed


def test_teardown_twice_is_idempotent(make_pipeline, connector):
    pipeline = make_pipeline(TeardownPipeline, connector)
    first = pipeline.run(_request(A, B))
    second = pipeline.run(_request(A, B))

    assert first.to_teardown_response() == second.to_teardown_response()
    assert first.to_teardown_response()["status"] == "reset_complete"
    assert connector.sessions[A][0].commands == connector.sessions[A][1].commands


def test_failing_step_does_not_stop_the_rest(make_pipeline, connector_factory):
    connector = connector_factory(rules={A: [("systemctl daemon-reload", (1, "", "dbus unavailable"))]})
    pipeline = make_pipeline(TeardownPipeline, connector)

    result = pipeline.run(_request(A))

    node = result.nodes[0]
    assert node.status == "success"
    assert node.message == "reset with 1 failed step(s)"
    assert [s.description for s in node.failed_steps] == ["reload systemd"]
    assert len(connector.sessions[A][0].commands) == len(pipeline.plan())


def test_steps_included_on_request(make_pipeline, connector):
    result = make_pipeline(TeardownPipeline, connector).run(_request(A))
    entry = result.to_teardown_response(include_steps=True)["results"][0]
    assert entry["steps"][0] == {"description": "stop forwarder", "status": "ok", "output": ""}


def test_cancelled_teardown_skips_nodes(make_pipeline, connector):
    token = CancelToken()
    token.cancel()
    result = make_pipeline(TeardownPipeline, connector).run(_request(A, B), cancel=token)

    assert [n.status for n in result.nodes] == ["skipped", "skipped"]
    assert sum(connector.attempts.values()) == 0


def test_teardown_events(make_pipeline, connector, capture):
    make_pipeline(TeardownPipeline, connector).run(_request(A))
    kinds = capture.kinds()
    assert kinds[0] == "RunStarted"
    assert kinds[-1] == "RunSummary"
    assert {e.operation for e in capture.events} == {"teardown"}
