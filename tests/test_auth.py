from __future__ import annotations

import asyncio

import pytest

from core.auth import AuthSession, AuthState
from core.errors import (
    AuthChallengeRequired,
    DatacenterRedirectError,
    InvalidAuthTransition,
    RpcError,
    TransientNetworkError,
)
from core.recovery import RecoveryPolicy
from fakes import FakePrompter, FakeRpc, RecordingSleep

PASSWORD_INFO = {
    "srp_id": 555,
    "srp_B": (123456789).to_bytes(256, "big"),
    "current_algo": {
        "salt1": b"s1",
        "salt2": b"s2",
        "g": 3,
        "p": (2**127 - 1).to_bytes(256, "big"),
        "iterations": 1000,
    },
}


def _session(rpc: FakeRpc, prompter=None, sleep=None, **kwargs) -> AuthSession:
    recovery = RecoveryPolicy(sleep=sleep or RecordingSleep())
    return AuthSession(rpc, prompter or FakePrompter(), recovery, **kwargs)


def test_datacenter_redirect_is_followed_once() -> None:
    rpc = FakeRpc(
        {
            "auth.sendCode": [
                DatacenterRedirectError(303, "PHONE_MIGRATE_2"),
                {"phone_code_hash": "hash-1"},
            ]
        }
    )
    session = _session(rpc)

    state = asyncio.run(session.submit_phone("+15550001111"))

    assert state is AuthState.AWAITING_CODE
    assert rpc.dc_switches == [2]
    sent = rpc.calls_to("auth.sendCode")
    assert len(sent) == 2
    assert sent[0] == sent[1]
    assert session.phone_code_hash == "hash-1"


def test_second_redirect_propagates() -> None:
    redirect = DatacenterRedirectError(303, "PHONE_MIGRATE_2")
    rpc = FakeRpc({"auth.sendCode": [redirect, redirect]})
    session = _session(rpc)

    with pytest.raises(DatacenterRedirectError):
        asyncio.run(session.submit_phone("+15550001111"))

    assert len(rpc.calls_to("auth.sendCode")) == 2
    assert rpc.dc_switches == [2]
    assert session.state is AuthState.UNAUTHENTICATED


def test_code_then_password_challenge() -> None:
    rpc = FakeRpc(
        {
            "auth.sendCode": [{"phone_code_hash": "hash-1"}],
            "auth.signIn": [AuthChallengeRequired(401, "SESSION_PASSWORD_NEEDED")],
            "account.getPassword": [PASSWORD_INFO],
            "auth.checkPassword": [{"_": "auth.Authorization"}],
        }
    )
    session = _session(rpc)

    asyncio.run(session.submit_phone("+15550001111"))
    assert asyncio.run(session.submit_code("12345")) is AuthState.AWAITING_PASSWORD
    assert asyncio.run(session.submit_password("hunter2")) is AuthState.AUTHENTICATED

    sign_in = rpc.calls_to("auth.signIn")[0]
    assert sign_in == {
        "phone_number": "+15550001111",
        "phone_code_hash": "hash-1",
        "phone_code": "12345",
    }
    password = rpc.calls_to("auth.checkPassword")[0]["password"]
    assert password["srp_id"] == 555
    assert len(password["A"]) == 256
    assert len(password["M1"]) == 32
    assert password["A"] != password["M1"]


def test_wrong_state_is_rejected() -> None:
    session = _session(FakeRpc())
    with pytest.raises(InvalidAuthTransition):
        asyncio.run(session.submit_code("12345"))
    with pytest.raises(InvalidAuthTransition):
        asyncio.run(session.submit_password("hunter2"))


def test_login_skips_flow_when_session_is_authorized() -> None:
    rpc = FakeRpc(authorized=True)
    session = _session(rpc)

    asyncio.run(session.login())

    assert session.state is AuthState.AUTHENTICATED
    assert rpc.calls == []


def test_login_with_prompted_phone_code_and_password() -> None:
    rpc = FakeRpc(
        {
            "auth.sendCode": [{"phone_code_hash": "hash-1"}],
            "auth.signIn": [AuthChallengeRequired(401, "SESSION_PASSWORD_NEEDED")],
            "account.getPassword": [PASSWORD_INFO],
            "auth.checkPassword": [{}],
        }
    )
    prompter = FakePrompter(answers=[" +15550001111 ", "12345"], secrets=["hunter2"])
    session = _session(rpc, prompter)

    asyncio.run(session.login())

    assert session.state is AuthState.AUTHENTICATED
    assert session.phone == "+15550001111"
    assert len(prompter.questions) == 3


def test_login_retries_same_state_after_recoverable_error() -> None:
    rpc = FakeRpc(
        {
            "auth.sendCode": [{"phone_code_hash": "hash-1"}],
            "auth.signIn": [RpcError(400, "PHONE_CODE_INVALID"), {}],
        }
    )
    prompter = FakePrompter(answers=["00000", "12345"])
    sleep = RecordingSleep()
    session = _session(rpc, prompter, sleep, phone="+15550001111")

    asyncio.run(session.login())

    assert session.state is AuthState.AUTHENTICATED
    assert len(rpc.calls_to("auth.sendCode")) == 1
    assert [call["phone_code"] for call in rpc.calls_to("auth.signIn")] == ["00000", "12345"]
    assert sleep.delays == [5]


def test_login_restarts_after_repeated_redirect() -> None:
    redirect = DatacenterRedirectError(303, "PHONE_MIGRATE_4")
    rpc = FakeRpc(
        {
            "auth.sendCode": [redirect, redirect, {"phone_code_hash": "hash-2"}],
            "auth.signIn": [{}],
        }
    )
    prompter = FakePrompter(answers=["12345"])
    sleep = RecordingSleep()
    session = _session(rpc, prompter, sleep, phone="+15550001111")

    asyncio.run(session.login())

    assert session.state is AuthState.AUTHENTICATED
    assert len(rpc.calls_to("auth.sendCode")) == 3
    assert rpc.dc_switches == [4]
    assert session.phone_code_hash == "hash-2"
    assert sleep.delays == [5]


def test_login_recovers_when_session_check_fails() -> None:
    rpc = FakeRpc(authorized=True)
    rpc.authorization_errors.append(TransientNetworkError("connection reset"))
    sleep = RecordingSleep()
    session = _session(rpc, sleep=sleep)

    asyncio.run(session.login())

    assert session.state is AuthState.AUTHENTICATED
    assert sleep.delays == [5]
    assert rpc.calls == []
