"""
Fakes shared by the test modules.

Provides a virtual clock, a scripted requests session for relay endpoints and
stand-ins for the fee transaction builder, checkpoint source and ledger.
"""

import json
from typing import Dict, List, Any, Optional

from bundler.config import SubmitterSettings
from bundler.solana.models import FeeTransaction, SignatureStatus


def print_header(message):
    """Print a header with decoration."""
    print("\n" + "=" * 80)
    print(f"  {message}")
    print("=" * 80)


def print_result(test_name, success, message=None):
    """Print a test result."""
    status = "✅ PASSED" if success else "❌ FAILED"
    print(f"{test_name}: {status}")
    if message and not success:
        print(f"  Error: {message}")


def run_test_functions(title, tests) -> bool:
    """Run plain test functions outside pytest and report each one."""
    print_header(title)
    passed = True
    for test in tests:
        try:
            test()
            print_result(test.__name__, True)
        except Exception as e:
            print_result(test.__name__, False, f"{type(e).__name__}: {e}")
            passed = False
    return passed


class FakeClock:
    """Virtual millisecond clock; sleep advances time instantly."""

    def __init__(self, start_ms: float = 0.0):
        self.now = start_ms
        self.sleeps: List[float] = []

    def now_ms(self) -> float:
        return self.now

    async def sleep(self, duration_ms: float):
        self.sleeps.append(duration_ms)
        if duration_ms > 0:
            self.now += duration_ms

    def advance(self, duration_ms: float):
        self.now += duration_ms


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, body: Any = None, headers: Optional[Dict[str, str]] = None, text: Optional[str] = None):
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}
        self.text = text if text is not None else (json.dumps(body) if body is not None else "")

    def json(self):
        if self._body is None:
            return json.loads(self.text)
        return self._body


def rpc_result(result: Any) -> FakeResponse:
    return FakeResponse(200, {"jsonrpc": "2.0", "id": 1, "result": result})


class FakeSession:
    """
    Scripted requests session.

    Each URL maps to a list of responses or exceptions served in order; the
    last entry repeats once the script is exhausted.
    """

    def __init__(self, scripts: Optional[Dict[str, List[Any]]] = None):
        self.scripts: Dict[str, List[Any]] = {url: list(items) for url, items in (scripts or {}).items()}
        self.headers: Dict[str, str] = {}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def post(self, url, json=None, timeout=None):
        self.calls.append({"url": url, "payload": json, "timeout": timeout})
        script = self.scripts.get(url)
        if not script:
            raise AssertionError(f"Unexpected request to {url}")

        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, BaseException):
            raise item
        return item

    def calls_to(self, url: str, method: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            c for c in self.calls
            if c["url"] == url and (method is None or c["payload"]["method"] == method)
        ]

    def close(self):
        self.closed = True


class FakeCheckpoints:
    """Checkpoint source returning a fixed blockhash, optionally failing."""

    def __init__(self, fail_times: int = 0):
        self.fail_times = fail_times
        self.calls = 0

    async def get_checkpoint(self) -> str:
        self.calls += 1
        if self.calls <= self.fail_times:
            raise RuntimeError("blockhash unavailable")
        return "11111111111111111111111111111111"


class FakeFeeTxBuilder:
    """Fee transaction builder recording the fee of every attempt."""

    def __init__(self, fail_on: Optional[List[int]] = None, encoding: str = "base58", error_message: str = "signing failed"):
        self.fail_on = set(fail_on or [])
        self.error_message = error_message
        self.encoding = encoding
        self.fees: List[int] = []
        self.calls = 0

    async def build_fee_transaction(self, payer, recipients, lamports, checkpoint) -> FeeTransaction:
        self.calls += 1
        if self.calls in self.fail_on:
            raise RuntimeError(self.error_message)
        self.fees.append(lamports)
        return FeeTransaction(
            encoded=f"feetx{self.calls}",
            signature=f"feesig{self.calls}",
            recipient=recipients.select(),
            lamports=lamports,
            encoding=self.encoding
        )


class FakeLedger:
    """Ledger returning scripted signature statuses, or raising."""

    def __init__(self, statuses: Optional[List[Optional[SignatureStatus]]] = None, error: Optional[Exception] = None):
        self.statuses = statuses or []
        self.error = error
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def get_signature_statuses(self, signatures, search_transaction_history=True):
        self.calls.append({"signatures": list(signatures), "search_transaction_history": search_transaction_history})
        if self.error:
            raise self.error
        return self.statuses

    async def close(self):
        self.closed = True


def fast_settings(**overrides) -> SubmitterSettings:
    """Settings with the reference fee and cooldown values."""
    values = dict(
        base_fee_lamports=1_000_000,
        start_multiplier=1.0,
        max_multiplier=3.0,
        escalation_factor=1.15,
        max_attempts=3,
        backoff_base_ms=250,
        backoff_cap_ms=4000,
        backoff_jitter_ms=0,
        rate_limit_cooldown_ms=4000,
        server_busy_cooldown_ms=8000,
        confirm_timeout_ms=10000,
        confirm_poll_interval_ms=2000,
    )
    values.update(overrides)
    return SubmitterSettings(**values)
