"""Tests for request correlation."""

import asyncio

import pytest

from mcp_client_cli.errors import PeerClosed
from mcp_client_cli.protocol.correlator import RequestCorrelator
from mcp_client_cli.protocol.jsonrpc import ErrorObject, JsonRpcResponse


class TestIssue:
    """Tests for issuing requests."""

    def test_ids_increase_and_never_repeat(self):
        """Should hand out increasing ids starting at 1."""

        async def scenario():
            correlator = RequestCorrelator()
            ids = []
            for _ in range(5):
                request, future = correlator.issue("ping")
                ids.append(request.id)
                correlator.resolve(JsonRpcResponse(id=request.id, result={}))
                await future
            return ids

        assert asyncio.run(scenario()) == [1, 2, 3, 4, 5]

    def test_builds_request_frame(self):
        """Should return a request carrying method and params."""

        async def scenario():
            correlator = RequestCorrelator()
            request, _ = correlator.issue("tools/call", {"name": "x"})
            return request, correlator.pending_ids()

        request, pending = asyncio.run(scenario())
        assert request.method == "tools/call"
        assert request.params == {"name": "x"}
        assert pending == [request.id]


class TestResolve:
    """Tests for resolving responses."""

    def test_resolves_matching_future(self):
        """Should deliver the response to the caller with the same id."""

        async def scenario():
            correlator = RequestCorrelator()
            request, future = correlator.issue("ping")
            resolved = correlator.resolve(JsonRpcResponse(id=request.id, result={"ok": True}))
            return resolved, await future, correlator.pending_count

        resolved, response, pending = asyncio.run(scenario())
        assert resolved is True
        assert response.result == {"ok": True}
        assert pending == 0

    def test_out_of_order_responses(self):
        """Should match responses by id regardless of arrival order."""

        async def scenario():
            correlator = RequestCorrelator()
            calls = [correlator.issue("x") for _ in range(4)]
            for request, _ in reversed(calls):
                correlator.resolve(JsonRpcResponse(id=request.id, result=request.id))
            return [(request.id, (await future).result) for request, future in calls]

        for request_id, result in asyncio.run(scenario()):
            assert request_id == result

    def test_unknown_id_is_noop(self, caplog):
        """Should ignore and log a response nobody asked for."""

        async def scenario():
            correlator = RequestCorrelator()
            request, future = correlator.issue("ping")
            resolved = correlator.resolve(JsonRpcResponse(id=999, result={}))
            return resolved, future.done(), correlator.pending_count

        resolved, done, pending = asyncio.run(scenario())
        assert resolved is False
        assert done is False
        assert pending == 1
        assert "unknown request id 999" in caplog.text

    def test_second_response_for_same_id_is_noop(self):
        """Should ignore a duplicate response once the call is resolved."""

        async def scenario():
            correlator = RequestCorrelator()
            request, future = correlator.issue("ping")
            first = correlator.resolve(JsonRpcResponse(id=request.id, result=1))
            second = correlator.resolve(JsonRpcResponse(id=request.id, result=2))
            return first, second, (await future).result

        assert asyncio.run(scenario()) == (True, False, 1)

    def test_error_response_resolves_future(self):
        """Should deliver error responses like any other response."""

        async def scenario():
            correlator = RequestCorrelator()
            request, future = correlator.issue("ping")
            correlator.resolve(JsonRpcResponse(id=request.id, error=ErrorObject(-1, "bad")))
            return await future

        response = asyncio.run(scenario())
        assert response.error.message == "bad"


class TestFailAll:
    """Tests for failing outstanding calls."""

    def test_fails_every_pending_call_with_same_error(self):
        """Should fail all K pending calls with the one error."""
        error = PeerClosed("gone")

        async def scenario():
            correlator = RequestCorrelator()
            futures = [correlator.issue("x")[1] for _ in range(3)]
            failed = correlator.fail_all(error)
            results = await asyncio.gather(*futures, return_exceptions=True)
            return failed, results, correlator.pending_count

        failed, results, pending = asyncio.run(scenario())
        assert failed == 3
        assert all(result is error for result in results)
        assert pending == 0

    def test_only_first_call_has_effect(self):
        """Should ignore later fail_all calls."""

        async def scenario():
            correlator = RequestCorrelator()
            _, future = correlator.issue("x")
            first = correlator.fail_all(PeerClosed("first"))
            second = correlator.fail_all(PeerClosed("second"))
            with pytest.raises(PeerClosed, match="first"):
                await future
            return first, second

        assert asyncio.run(scenario()) == (1, 0)

    def test_issue_after_fail_all_raises(self):
        """Should refuse new calls once failed."""

        async def scenario():
            correlator = RequestCorrelator()
            correlator.fail_all(PeerClosed("gone"))
            correlator.issue("x")

        with pytest.raises(PeerClosed):
            asyncio.run(scenario())


class TestDiscard:
    """Tests for discarding calls."""

    def test_discard_removes_pending_call(self):
        """Should forget a call so a late response is treated as unknown."""

        async def scenario():
            correlator = RequestCorrelator()
            request, _ = correlator.issue("x")
            dropped = correlator.discard(request.id)
            late = correlator.resolve(JsonRpcResponse(id=request.id, result={}))
            return dropped, late

        dropped, late = asyncio.run(scenario())
        assert dropped is not None
        assert dropped.method == "x"
        assert late is False
