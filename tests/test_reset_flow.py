"""Tests for authflow/reset_flow.py.

Every test builds a fresh controller over shared MemoryStorage, the same
way each chat message builds one: nothing survives in memory between steps.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from authflow.models import ResetFlowState, TokenPair
from authflow.reset_flow import (
    NETWORK_ERROR,
    Landing,
    ResetFlowController,
    ResetFlowStore,
    ResetStep,
)
from authflow.session_bridge import TokenManagerBridge
from authflow.tokens import TokenManager

FORGOT = "/api/v1/auth/forgot-password"
VERIFY = "/api/v1/auth/verify-reset-password"

RESET_OK = {"data": {
    "message": "Password reset",
    "user": {"id": "u1"},
    "access_token": "at",
    "refresh_token": "rt",
    "expires_in": 900,
}}


@pytest.fixture
def store(storage) -> ResetFlowStore:
    return ResetFlowStore(storage, "chat-1", ttl_sec=60)


@pytest.fixture
def bridge() -> AsyncMock:
    b = AsyncMock()
    b.establish_session.return_value = True
    return b


@pytest.fixture
def flow(client, store, bridge) -> ResetFlowController:
    return ResetFlowController(client, store, bridge)


async def _seed(store: ResetFlowStore, email=None, otp=None):
    await store.set(ResetFlowState(email=email, verified_otp=otp))


@pytest.mark.asyncio
class TestEntryGuards:
    async def test_password_step_without_email_goes_to_step_one(self, flow):
        outcome = await flow.enter(ResetStep.AWAITING_NEW_PASSWORD)
        assert outcome.redirected
        assert outcome.step == ResetStep.AWAITING_EMAIL
        assert outcome.notice.kind == "error"

    async def test_password_step_without_otp_goes_to_step_two(self, flow, store):
        await _seed(store, email="a@b.c")
        outcome = await flow.enter(ResetStep.AWAITING_NEW_PASSWORD)
        assert outcome.redirected
        assert outcome.step == ResetStep.AWAITING_OTP

    async def test_otp_step_without_email_goes_to_step_one(self, flow):
        outcome = await flow.enter(ResetStep.AWAITING_OTP)
        assert outcome.step == ResetStep.AWAITING_EMAIL

    async def test_satisfied_preconditions_stay(self, flow, store):
        await _seed(store, email="a@b.c", otp="123456")
        outcome = await flow.enter(ResetStep.AWAITING_NEW_PASSWORD)
        assert not outcome.redirected
        assert outcome.notice is None

    async def test_email_step_is_always_open(self, flow):
        assert not (await flow.enter(ResetStep.AWAITING_EMAIL)).redirected

    async def test_current_step(self, flow, store):
        assert await flow.current_step() == ResetStep.AWAITING_EMAIL
        await _seed(store, email="a@b.c")
        assert await flow.current_step() == ResetStep.AWAITING_OTP
        await _seed(store, email="a@b.c", otp="1234")
        assert await flow.current_step() == ResetStep.AWAITING_NEW_PASSWORD


@pytest.mark.asyncio
class TestRequestReset:
    async def test_success_writes_email_and_drops_old_otp(self, flow, store, backend):
        backend.on("POST", FORGOT, json_body={"message": "Kode OTP terkirim"})
        await _seed(store, email="old@b.c", otp="9999")

        outcome = await flow.request_reset("  a@b.c ")

        assert outcome.step == ResetStep.AWAITING_OTP
        assert "Kode OTP terkirim" in outcome.notice.text
        assert await store.get() == ResetFlowState(email="a@b.c")
        assert backend.body(backend.calls[0]) == {"email": "a@b.c"}

    @pytest.mark.parametrize("email", ["", "   ", "not-an-email"])
    async def test_invalid_email_never_reaches_network(self, flow, backend, email):
        outcome = await flow.request_reset(email)
        assert outcome.step == ResetStep.AWAITING_EMAIL
        assert outcome.notice.kind == "error"
        assert backend.calls == []

    async def test_backend_error_message_verbatim(self, flow, store, backend):
        backend.on("POST", FORGOT, status=404, json_body={"error": {"message": "User not found"}})
        outcome = await flow.request_reset("a@b.c")
        assert outcome.notice.text == "❌ User not found"
        assert outcome.step == ResetStep.AWAITING_EMAIL
        assert await store.get() == ResetFlowState()

    async def test_resend_code(self, flow, store, backend):
        backend.on("POST", FORGOT, json_body={"message": "sent"})
        await _seed(store, email="a@b.c")

        outcome = await flow.resend_code()

        assert outcome.step == ResetStep.AWAITING_OTP
        assert backend.body(backend.calls[0]) == {"email": "a@b.c"}

    async def test_resend_without_email_redirects(self, flow, backend):
        outcome = await flow.resend_code()
        assert outcome.step == ResetStep.AWAITING_EMAIL
        assert backend.calls == []


@pytest.mark.asyncio
class TestVerifyOtp:
    async def test_success_writes_verified_otp(self, flow, store, backend):
        backend.on("POST", VERIFY, json_body={"message": "valid"})
        await _seed(store, email="a@b.c")

        outcome = await flow.verify_otp("123456")

        assert outcome.step == ResetStep.AWAITING_NEW_PASSWORD
        assert await store.get() == ResetFlowState(email="a@b.c", verified_otp="123456")
        assert backend.body(backend.calls[0]) == {"token": "123456"}

    @pytest.mark.parametrize("code", ["", "12", "abcdef", "123456789"])
    async def test_malformed_code_is_rejected_locally(self, flow, store, backend, code):
        await _seed(store, email="a@b.c")
        outcome = await flow.verify_otp(code)
        assert outcome.step == ResetStep.AWAITING_OTP
        assert backend.calls == []

    async def test_rejected_code_keeps_email(self, flow, store, backend):
        backend.on("POST", VERIFY, status=400, json_body={"message": "OTP tidak valid"})
        await _seed(store, email="a@b.c")

        outcome = await flow.verify_otp("123456")

        assert outcome.notice.text == "❌ OTP tidak valid"
        assert await store.get() == ResetFlowState(email="a@b.c")

    async def test_without_email_redirects_before_network(self, flow, backend):
        outcome = await flow.verify_otp("123456")
        assert outcome.redirected
        assert outcome.step == ResetStep.AWAITING_EMAIL
        assert backend.calls == []


@pytest.mark.asyncio
class TestConfirmResetValidation:
    @pytest.mark.parametrize("new,confirm,fragment", [
        ("", "", "подтверждение"),
        ("abcdef", "", "подтверждение"),
        ("abcdef", "abcdeg", "не совпадают"),
        ("abc12", "abc12", "не короче 6"),
    ])
    async def test_local_rejections(self, flow, store, backend, new, confirm, fragment):
        await _seed(store, email="a@b.c", otp="123456")

        outcome = await flow.confirm_reset(new, confirm)

        assert outcome.step == ResetStep.AWAITING_NEW_PASSWORD
        assert fragment in outcome.notice.text
        assert backend.calls == []
        assert await store.get() == ResetFlowState(email="a@b.c", verified_otp="123456")

    async def test_missing_otp_redirects_to_otp_step(self, flow, store, backend):
        await _seed(store, email="a@b.c")
        outcome = await flow.confirm_reset("abcdef", "abcdef")
        assert outcome.redirected
        assert outcome.step == ResetStep.AWAITING_OTP
        assert backend.calls == []

    async def test_missing_email_is_checked_first(self, flow, backend):
        outcome = await flow.confirm_reset("abc", "xyz")
        assert outcome.step == ResetStep.AWAITING_EMAIL
        assert backend.calls == []

    async def test_custom_min_length(self, client, store, bridge, backend):
        flow = ResetFlowController(client, store, bridge, min_password_length=10)
        await _seed(store, email="a@b.c", otp="123456")
        outcome = await flow.confirm_reset("abcdefgh", "abcdefgh")
        assert "не короче 10" in outcome.notice.text
        assert backend.calls == []


@pytest.mark.asyncio
class TestConfirmResetOutcome:
    async def test_success_clears_state_and_logs_in(self, flow, store, bridge, backend):
        backend.on("POST", VERIFY, json_body=RESET_OK)
        await _seed(store, email="a@b.c", otp="123456")

        outcome = await flow.confirm_reset("abcdef", "abcdef")

        assert outcome.step == ResetStep.COMPLETE
        assert outcome.landing == Landing.HOME
        assert outcome.notice.kind == "success"
        assert await store.get() == ResetFlowState()
        assert backend.body(backend.calls[0]) == {"email": "a@b.c", "otp_code": "123456", "new_password": "abcdef"}
        bridge.establish_session.assert_awaited_once_with(
            TokenPair(access_token="at", refresh_token="rt", expires_in=900)
        )

    async def test_bridge_refusal_is_not_a_reset_failure(self, flow, store, bridge, backend):
        backend.on("POST", VERIFY, json_body=RESET_OK)
        bridge.establish_session.return_value = False
        await _seed(store, email="a@b.c", otp="123456")

        outcome = await flow.confirm_reset("abcdef", "abcdef")

        assert outcome.ok
        assert outcome.step == ResetStep.COMPLETE
        assert outcome.landing == Landing.LOGIN
        assert outcome.notice.kind == "info"
        assert await store.get() == ResetFlowState()

    async def test_bridge_crash_is_not_a_reset_failure(self, flow, store, bridge, backend):
        backend.on("POST", VERIFY, json_body=RESET_OK)
        bridge.establish_session.side_effect = RuntimeError("provider down")
        await _seed(store, email="a@b.c", otp="123456")

        outcome = await flow.confirm_reset("abcdef", "abcdef")

        assert outcome.ok
        assert outcome.landing == Landing.LOGIN
        assert await store.get() == ResetFlowState()

    @pytest.mark.parametrize("body", [
        {"message": "Password reset successfully"},
        {"data": {"message": "ok", "user": "u1"}},
        {"data": {"message": "ok", "access_token": "at"}},
    ])
    async def test_success_without_tokens_routes_to_login(self, flow, store, bridge, backend, body):
        backend.on("POST", VERIFY, json_body=body)
        await _seed(store, email="a@b.c", otp="123456")

        outcome = await flow.confirm_reset("abcdef", "abcdef")

        assert outcome.ok
        assert outcome.step == ResetStep.COMPLETE
        assert outcome.landing == Landing.LOGIN
        assert outcome.notice.kind == "info"
        assert await store.get() == ResetFlowState()
        bridge.establish_session.assert_not_awaited()

    async def test_success_with_plain_user_still_logs_in(self, flow, store, bridge, backend):
        backend.on("POST", VERIFY, json_body={"data": dict(RESET_OK["data"], user="u1")})
        await _seed(store, email="a@b.c", otp="123456")

        outcome = await flow.confirm_reset("abcdef", "abcdef")

        assert outcome.landing == Landing.HOME
        bridge.establish_session.assert_awaited_once()

    async def test_unreadable_success_body_still_clears_state(self, flow, store, bridge, backend):
        backend.on("POST", VERIFY, handler=lambda request: httpx.Response(200, text="done"))
        await _seed(store, email="a@b.c", otp="123456")

        outcome = await flow.confirm_reset("abcdef", "abcdef")

        assert outcome.ok
        assert outcome.landing == Landing.LOGIN
        assert await store.get() == ResetFlowState()
        bridge.establish_session.assert_not_awaited()

    async def test_backend_rejection_clears_only_otp(self, flow, store, bridge, backend):
        backend.on("POST", VERIFY, status=400, json_body={"data": {"error": {"message": "OTP expired"}}})
        await _seed(store, email="a@b.c", otp="123456")

        outcome = await flow.confirm_reset("abcdef", "abcdef")

        assert outcome.step == ResetStep.AWAITING_NEW_PASSWORD
        assert outcome.notice.text == "❌ OTP expired"
        assert await store.get() == ResetFlowState(email="a@b.c")
        bridge.establish_session.assert_not_awaited()

    async def test_transport_failure_keeps_state(self, flow, store, backend):
        def boom(request):
            raise httpx.ConnectError("refused", request=request)

        backend.on("POST", VERIFY, handler=boom)
        await _seed(store, email="a@b.c", otp="123456")

        outcome = await flow.confirm_reset("abcdef", "abcdef")

        assert outcome.notice.text == NETWORK_ERROR
        assert await store.get() == ResetFlowState(email="a@b.c", verified_otp="123456")

    async def test_auto_login_stores_tokens(self, client, store, storage, backend):
        backend.on("POST", VERIFY, json_body=RESET_OK)
        tokens = TokenManager(storage, client, scope="chat-1")
        flow = ResetFlowController(client, store, TokenManagerBridge(tokens))
        await _seed(store, email="a@b.c", otp="123456")

        outcome = await flow.confirm_reset("abcdef", "abcdef")

        assert outcome.landing == Landing.HOME
        assert await tokens.get_access_token() == "at"
        assert await tokens.get_refresh_token() == "rt"

    async def test_auto_login_without_token_storage_routes_to_login(self, client, store, backend):
        backend.on("POST", VERIFY, json_body=RESET_OK)
        flow = ResetFlowController(client, store, TokenManagerBridge(TokenManager(None, client)))
        await _seed(store, email="a@b.c", otp="123456")

        outcome = await flow.confirm_reset("abcdef", "abcdef")

        assert outcome.landing == Landing.LOGIN
        assert await store.get() == ResetFlowState()

    async def test_concurrent_submissions_each_run_fully(self, flow, store, bridge, backend):
        async def slow(request):
            await asyncio.sleep(0.02)
            return httpx.Response(200, json=RESET_OK)

        backend.on("POST", VERIFY, handler=slow)
        await _seed(store, email="a@b.c", otp="123456")

        first, second = await asyncio.gather(
            flow.confirm_reset("abcdef", "abcdef"),
            flow.confirm_reset("abcdef", "abcdef"),
        )

        assert first.step == second.step == ResetStep.COMPLETE
        assert len(backend.calls) == 2
        assert await store.get() == ResetFlowState()
