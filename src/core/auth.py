"""Login state machine.

UNAUTHENTICATED -> CODE_REQUESTED -> AWAITING_CODE -> [AWAITING_PASSWORD]
-> AUTHENTICATED

``submit_*`` methods perform a single transition each; ``login`` drives the
whole flow with the operator prompt and the recovery policy.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from core.errors import (
    AuthChallengeRequired,
    DatacenterRedirectError,
    InvalidAuthTransition,
    RelayError,
    RetryExhausted,
)
from core.ports import PrompterPort, RpcClientPort
from core.recovery import RecoveryPolicy
from core.srp import compute_srp_check

LOGGER = logging.getLogger(__name__)

CODE_SETTINGS = {
    "allow_flashcall": False,
    "current_number": True,
    "allow_app_hash": True,
    "allow_missed_call": False,
}


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    CODE_REQUESTED = "code_requested"
    AWAITING_CODE = "awaiting_code"
    AWAITING_PASSWORD = "awaiting_password"
    AUTHENTICATED = "authenticated"


class AuthSession:
    """One login attempt against the platform."""

    def __init__(
        self,
        rpc: RpcClientPort,
        prompter: PrompterPort,
        recovery: RecoveryPolicy,
        phone: Optional[str] = None,
        password: Optional[str] = None,
    ) -> None:
        self._rpc = rpc
        self._prompter = prompter
        self._recovery = recovery
        self._configured_phone = phone
        self._configured_password = password
        self.state = AuthState.UNAUTHENTICATED
        self.phone: Optional[str] = None
        self.phone_code_hash: Optional[str] = None
        self.password_info: Optional[dict[str, Any]] = None

    def _expect(self, *states: AuthState) -> None:
        if self.state not in states:
            allowed = ", ".join(state.value for state in states)
            raise InvalidAuthTransition(f"Expected state {allowed}, got {self.state.value}")

    def reset(self) -> None:
        self.state = AuthState.UNAUTHENTICATED
        self.phone = None
        self.phone_code_hash = None
        self.password_info = None

    async def submit_phone(self, phone: str) -> AuthState:
        """Request a login code, following one datacenter redirect."""

        self._expect(AuthState.UNAUTHENTICATED)
        params = {"phone_number": phone, "settings": dict(CODE_SETTINGS)}
        self.state = AuthState.CODE_REQUESTED
        try:
            try:
                result = await self._rpc.call("auth.sendCode", params)
            except DatacenterRedirectError as exc:
                LOGGER.info("Migrating to DC%s", exc.dc_id)
                await self._rpc.set_default_dc(exc.dc_id)
                # Only one redirect is followed; a second one propagates.
                result = await self._rpc.call("auth.sendCode", params)
        except BaseException:
            self.state = AuthState.UNAUTHENTICATED
            raise

        self.phone = phone
        self.phone_code_hash = result["phone_code_hash"]
        self.state = AuthState.AWAITING_CODE
        LOGGER.info("Login code sent")
        return self.state

    async def submit_code(self, code: str) -> AuthState:
        self._expect(AuthState.AWAITING_CODE)
        try:
            await self._rpc.call(
                "auth.signIn",
                {
                    "phone_number": self.phone,
                    "phone_code_hash": self.phone_code_hash,
                    "phone_code": code,
                },
            )
        except AuthChallengeRequired:
            LOGGER.info("Two-factor password required")
            self.state = AuthState.AWAITING_PASSWORD
            return self.state

        self.state = AuthState.AUTHENTICATED
        return self.state

    async def submit_password(self, password: str) -> AuthState:
        self._expect(AuthState.AWAITING_PASSWORD)
        self.password_info = await self._rpc.call("account.getPassword", {})
        check = compute_srp_check(password, self.password_info)
        await self._rpc.call(
            "auth.checkPassword",
            {"password": {"srp_id": check.srp_id, "A": check.A, "M1": check.M1}},
        )
        self.state = AuthState.AUTHENTICATED
        return self.state

    async def _step(self) -> None:
        if self.state is AuthState.UNAUTHENTICATED:
            phone = self._configured_phone or await self._prompter.ask(
                "Phone number (international format): "
            )
            await self.submit_phone(phone.strip())
        elif self.state is AuthState.AWAITING_CODE:
            code = await self._prompter.ask("Login code: ")
            await self.submit_code(code.strip())
        elif self.state is AuthState.AWAITING_PASSWORD:
            password = self._configured_password or await self._prompter.ask_secret("2FA password: ")
            await self.submit_password(password)
        else:
            raise InvalidAuthTransition(f"No transition from {self.state.value}")

    async def login(self) -> None:
        """Drive the state machine until the session is authenticated."""

        session_checked = False
        while self.state is not AuthState.AUTHENTICATED:
            try:
                if not session_checked:
                    if await self._rpc.is_authorized():
                        self.state = AuthState.AUTHENTICATED
                        self._recovery.reset()
                        return
                    session_checked = True
                    LOGGER.info("Starting authentication")
                await self._step()
            except (RetryExhausted, InvalidAuthTransition):
                raise
            except DatacenterRedirectError as exc:
                LOGGER.error("Repeated datacenter redirect, restarting login: %s", exc)
                await self._recovery.recover(exc)
                self.reset()
            except RelayError as exc:
                # Same state is retried after the backoff.
                LOGGER.error("Login step %s failed: %s", self.state.value, exc)
                await self._recovery.recover(exc)
            except Exception as exc:
                LOGGER.exception("Unexpected login failure, restarting login")
                await self._recovery.recover(exc)
                self.reset()
            else:
                self._recovery.reset()

        LOGGER.info("Login successful")
