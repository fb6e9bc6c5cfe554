#!/usr/bin/env python
"""
Tests for the bundle submission loop.

Relays are scripted FakeSession responses behind a real RelayClient so the
whole path from HTTP status to endpoint cooldown is exercised.
"""

import asyncio
import os
import sys

import pytest
import requests

sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from bundler.api.relay_client import RelayClient
from bundler.solana.bundle_submitter import BundleSubmitter
from bundler.solana.endpoint_registry import EndpointRegistry
from bundler.solana.fee_policy import FeeEscalationPolicy
from bundler.solana.fee_tx_builder import TipAccountSelector
from bundler.utils.clock import SelectionStrategy
from support_fakes import (
    FakeCheckpoints,
    FakeClock,
    FakeFeeTxBuilder,
    FakeResponse,
    FakeSession,
    fast_settings,
    rpc_result,
    run_test_functions,
)

A = "https://a.relay/api/v1/bundles"
B = "https://b.relay/api/v1/bundles"
C = "https://c.relay/api/v1/bundles"
TIP = "96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5"


def _submitter(scripts, urls=None, builder=None, checkpoints=None, events=None, **settings):
    clock = FakeClock(start_ms=1_000_000)
    session = FakeSession(scripts)
    strategy = SelectionStrategy(seed=42)
    config = fast_settings(**settings)
    events = events if events is not None else {}

    submitter = BundleSubmitter(
        registry=EndpointRegistry(urls or list(scripts), clock=clock),
        policy=FeeEscalationPolicy(
            start_multiplier=config.start_multiplier,
            max_multiplier=config.max_multiplier,
            escalation_factor=config.escalation_factor
        ),
        relay_client=RelayClient(session=session),
        fee_tx_builder=builder or FakeFeeTxBuilder(),
        checkpoints=checkpoints or FakeCheckpoints(),
        payer="payer",
        recipients=TipAccountSelector([TIP], strategy=strategy),
        settings=config,
        clock=clock,
        strategy=strategy,
        on_bundle_sent=lambda data: events.setdefault("sent", []).append(data),
        on_bundle_retry=lambda data: events.setdefault("retry", []).append(data),
        on_bundle_failed=lambda data: events.setdefault("failed", []).append(data),
    )
    return submitter, session, clock


def _cooldowns(submitter):
    return {e.url: e.cooldown_until for e in submitter.registry.snapshot()}


def test_failover_to_third_endpoint_after_server_errors():
    submitter, session, clock = _submitter({
        A: [FakeResponse(500, text="busy")],
        B: [FakeResponse(503, text="busy")],
        C: [rpc_result("bundle123")],
    })

    result = asyncio.run(submitter.send(["tx1", "tx2"]))

    assert result.success
    assert result.used_endpoint == C
    assert result.bundle_id == "bundle123"
    assert result.fee_signature == "feesig1"
    assert result.signatures == ["feesig1"]
    assert result.attempts == 1

    cooldowns = _cooldowns(submitter)
    assert cooldowns[A] == clock.now + 8000
    assert cooldowns[B] == clock.now + 8000
    assert cooldowns[C] == 0.0
    assert [e.url for e in submitter.registry.list_eligible()] == [C]


def test_bundle_payload_puts_fee_transaction_first():
    submitter, session, _ = _submitter({A: [rpc_result("bundle123")]})
    asyncio.run(submitter.send(["tx1", "tx2", "tx3"]))
    assert session.calls[0]["payload"]["params"] == [["feetx1", "tx1", "tx2", "tx3"]]


def test_stops_at_first_accepting_endpoint():
    submitter, session, _ = _submitter({
        A: [rpc_result("bundle-a")],
        B: [rpc_result("bundle-b")],
    })

    result = asyncio.run(submitter.send(["tx1"]))

    assert result.bundle_id == "bundle-a"
    assert len(session.calls_to(A)) == 1
    assert session.calls_to(B) == []


def test_rate_limit_escalates_fee_for_next_attempt():
    builder = FakeFeeTxBuilder()
    submitter, session, _ = _submitter(
        {A: [FakeResponse(429, text="Too Many Requests"), rpc_result("bundle123")]},
        builder=builder
    )

    result = asyncio.run(submitter.send(["tx1"]))

    assert result.success
    assert result.attempts == 2
    assert builder.fees == [1_000_000, 1_150_000]


def test_rate_limit_uses_retry_after_hint_for_cooldown():
    submitter, _, clock = _submitter({
        A: [FakeResponse(429, headers={"Retry-After": "1.5"})],
        B: [rpc_result("bundle123")],
    })

    result = asyncio.run(submitter.send(["tx1"]))

    assert result.used_endpoint == B
    assert _cooldowns(submitter)[A] == clock.now + 1500


def test_rate_limit_without_hint_uses_default_cooldown():
    submitter, _, clock = _submitter({
        A: [FakeResponse(429)],
        B: [rpc_result("bundle123")],
    })
    asyncio.run(submitter.send(["tx1"]))
    assert _cooldowns(submitter)[A] == clock.now + 4000


def test_repeated_rate_limits_clamp_fee_at_max():
    builder = FakeFeeTxBuilder()
    submitter, _, _ = _submitter({A: [FakeResponse(429)]}, builder=builder, max_attempts=12)

    result = asyncio.run(submitter.send(["tx1"]))

    assert not result.success
    assert len(builder.fees) == 12
    assert builder.fees[0] == 1_000_000
    assert builder.fees[1] == 1_150_000
    assert builder.fees[-1] == 3_000_000
    assert builder.fees == sorted(builder.fees)
    assert all(1_000_000 <= fee <= 3_000_000 for fee in builder.fees)


def test_multiplier_resets_between_sends():
    builder = FakeFeeTxBuilder()
    submitter, _, _ = _submitter(
        {A: [FakeResponse(429), FakeResponse(429), rpc_result("first"), rpc_result("second")]},
        builder=builder
    )

    first = asyncio.run(submitter.send(["tx1"]))
    second = asyncio.run(submitter.send(["tx1"]))

    assert first.bundle_id == "first"
    assert second.bundle_id == "second"
    assert builder.fees == [1_000_000, 1_150_000, 1_322_500, 1_000_000]


def test_server_errors_do_not_escalate_fee():
    builder = FakeFeeTxBuilder()
    submitter, _, _ = _submitter(
        {A: [FakeResponse(502), FakeResponse(408), rpc_result("bundle123")]},
        builder=builder
    )

    result = asyncio.run(submitter.send(["tx1"]))

    assert result.attempts == 3
    assert builder.fees == [1_000_000, 1_000_000, 1_000_000]


def test_other_failures_bump_error_count():
    submitter, _, clock = _submitter({
        A: [FakeResponse(200, {"jsonrpc": "2.0", "id": 1})],
        B: [requests.exceptions.ConnectionError("refused")],
        C: [rpc_result("bundle123")],
    })

    result = asyncio.run(submitter.send(["tx1"]))

    assert result.used_endpoint == C
    endpoints = {e.url: e for e in submitter.registry.snapshot()}
    assert endpoints[A].error_count == 1
    assert endpoints[B].error_count == 1
    assert endpoints[C].error_count == 0
    assert endpoints[A].cooldown_until == clock.now + 4000
    assert endpoints[B].cooldown_until == clock.now + 4000


def test_timeouts_use_server_busy_cooldown():
    submitter, _, clock = _submitter({
        A: [requests.exceptions.Timeout("read timed out")],
        B: [rpc_result("bundle123")],
    })
    asyncio.run(submitter.send(["tx1"]))

    endpoint = submitter.registry.snapshot()[0]
    assert endpoint.cooldown_until == clock.now + 8000
    assert endpoint.error_count == 0


def test_fee_build_failure_aborts_only_that_attempt():
    builder = FakeFeeTxBuilder(fail_on=[1])
    submitter, session, clock = _submitter({A: [rpc_result("bundle123")]}, builder=builder)

    result = asyncio.run(submitter.send(["tx1"]))

    assert result.success
    assert result.attempts == 2
    assert result.fee_signature == "feesig2"
    assert len(session.calls) == 1
    assert clock.sleeps == [500]
    assert submitter.registry.snapshot()[0].error_count == 0


def test_checkpoint_failure_aborts_only_that_attempt():
    submitter, session, _ = _submitter({A: [rpc_result("bundle123")]}, checkpoints=FakeCheckpoints(fail_times=2))

    result = asyncio.run(submitter.send(["tx1"]))

    assert result.success
    assert result.attempts == 3
    assert len(session.calls) == 1


def test_all_attempts_exhausted_reports_failure():
    events = {}
    submitter, session, clock = _submitter(
        {A: [FakeResponse(500)], B: [FakeResponse(500)]},
        events=events,
        max_attempts=3
    )

    result = asyncio.run(submitter.send(["tx1"]))

    assert not result.success
    assert result.bundle_id is None
    assert result.fee_signature == "feesig3"
    assert result.used_endpoint == B
    assert result.attempts == 3
    assert len(session.calls) == 6
    # Backoff between rounds only, none after the last
    assert clock.sleeps == [500, 1000]
    assert len(events["retry"]) == 2
    assert len(events["failed"]) == 1
    assert "sent" not in events


def test_failure_without_any_fee_transaction():
    submitter, session, _ = _submitter(
        {A: [rpc_result("never")]},
        builder=FakeFeeTxBuilder(fail_on=[1, 2]),
        max_attempts=2
    )

    result = asyncio.run(submitter.send(["tx1"]))

    assert not result.success
    assert result.fee_signature is None
    assert result.used_endpoint is None
    assert result.signatures == []
    assert session.calls == []


def test_fee_override_replaces_base_fee():
    builder = FakeFeeTxBuilder()
    submitter, _, _ = _submitter({A: [rpc_result("bundle123")]}, builder=builder)
    asyncio.run(submitter.send(["tx1"], fee_override=250_000))
    assert builder.fees == [250_000]


def test_caller_signatures_follow_fee_signature():
    submitter, _, _ = _submitter({A: [rpc_result("bundle123")]})
    result = asyncio.run(submitter.send(["tx1", "tx2"], signatures=["sig1", "sig2"]))
    assert result.signatures == ["feesig1", "sig1", "sig2"]


def test_sent_callback_receives_bundle_details():
    events = {}
    submitter, _, _ = _submitter({A: [rpc_result("bundle123")]}, events=events)
    asyncio.run(submitter.send(["tx1"]))

    sent = events["sent"][0]
    assert sent["bundle_id"] == "bundle123"
    assert sent["endpoint"] == A
    assert sent["fee_lamports"] == 1_000_000


def test_callback_errors_do_not_break_send():
    submitter, _, _ = _submitter({A: [rpc_result("bundle123")]})

    def explode(data):
        raise RuntimeError("observer failed")

    submitter.on_bundle_sent = explode
    result = asyncio.run(submitter.send(["tx1"]))
    assert result.success


def test_empty_bundle_rejected():
    submitter, _, _ = _submitter({A: [rpc_result("bundle123")]})
    with pytest.raises(ValueError):
        asyncio.run(submitter.send([]))


def test_relay_bodies_with_braces_are_classified_not_raised():
    submitter, session, _ = _submitter({
        A: [FakeResponse(503, text='{"error":"server busy"}')],
        B: [FakeResponse(200, {"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "invalid {bundle}"}})],
        C: [rpc_result("bundle123")],
    })

    result = asyncio.run(submitter.send(["tx1"]))

    assert result.success
    assert result.used_endpoint == C
    cooldowns = _cooldowns(submitter)
    assert cooldowns[A] == 1_008_000
    assert cooldowns[B] == 1_004_000
    assert {e.url: e.error_count for e in submitter.registry.snapshot()}[B] == 1


def test_fee_build_error_with_braces_aborts_only_that_attempt():
    builder = FakeFeeTxBuilder(fail_on=[1], error_message="rpc said {oops}")
    submitter, _, _ = _submitter({A: [rpc_result("bundle123")]}, builder=builder)

    result = asyncio.run(submitter.send(["tx1"]))

    assert result.success
    assert result.attempts == 2


def test_result_is_immutable():
    submitter, _, _ = _submitter({A: [rpc_result("bundle123")]})
    result = asyncio.run(submitter.send(["tx1"]))
    with pytest.raises(Exception):
        result.bundle_id = "other"


def run_all_tests():
    return run_test_functions("Bundle Submitter Tests", [
        test_failover_to_third_endpoint_after_server_errors,
        test_bundle_payload_puts_fee_transaction_first,
        test_stops_at_first_accepting_endpoint,
        test_rate_limit_escalates_fee_for_next_attempt,
        test_rate_limit_uses_retry_after_hint_for_cooldown,
        test_rate_limit_without_hint_uses_default_cooldown,
        test_repeated_rate_limits_clamp_fee_at_max,
        test_multiplier_resets_between_sends,
        test_server_errors_do_not_escalate_fee,
        test_other_failures_bump_error_count,
        test_timeouts_use_server_busy_cooldown,
        test_fee_build_failure_aborts_only_that_attempt,
        test_checkpoint_failure_aborts_only_that_attempt,
        test_all_attempts_exhausted_reports_failure,
        test_failure_without_any_fee_transaction,
        test_fee_override_replaces_base_fee,
        test_caller_signatures_follow_fee_signature,
        test_sent_callback_receives_bundle_details,
        test_callback_errors_do_not_break_send,
        test_empty_bundle_rejected,
        test_relay_bodies_with_braces_are_classified_not_raised,
        test_fee_build_error_with_braces_aborts_only_that_attempt,
        test_result_is_immutable,
    ])


if __name__ == "__main__":
    sys.exit(0 if run_all_tests() else 1)
