"""SRP helpers for the two-factor password step.

The password is stretched into a secret with three PBKDF2-HMAC-SHA512
rounds, then used as the SRP6a private value ``x``. The proof sent to the
server is the client public value ``A`` and the evidence ``M1``.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from core.errors import SrpError

KEY_BYTES = 64
PAD_BYTES = 256
DEFAULT_ITERATIONS = 100000

BytesLike = Union[bytes, bytearray, str]


def _to_bytes(value: BytesLike) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def _pbkdf2(secret: bytes, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha512", secret, salt, iterations, KEY_BYTES)


def derive_password_secret(
    password: BytesLike, salt1: BytesLike, salt2: BytesLike, iterations: int
) -> bytes:
    """Return the 64-byte secret derived from the password and both salts."""

    salt1 = _to_bytes(salt1)
    h1 = _pbkdf2(_to_bytes(password), salt1, iterations)
    h2 = _pbkdf2(h1, _to_bytes(salt2), iterations)
    return _pbkdf2(h2, salt1, 1)


def _sha256(*parts: bytes) -> bytes:
    digest = hashlib.sha256()
    for part in parts:
        digest.update(part)
    return digest.digest()


def _as_int(value: Union[int, bytes]) -> int:
    if isinstance(value, int):
        return value
    return int.from_bytes(bytes(value), "big")


def _pad(value: int) -> bytes:
    return value.to_bytes(PAD_BYTES, "big")


@dataclass(frozen=True)
class SrpCheck:
    """Values submitted with ``auth.checkPassword``."""

    srp_id: int
    A: bytes
    M1: bytes


def compute_srp_check(
    password: BytesLike,
    password_info: Mapping[str, Any],
    secret_a: Optional[int] = None,
) -> SrpCheck:
    """Build the SRP6a proof from an ``account.getPassword`` result.

    ``password_info`` carries ``srp_id``, ``srp_B`` and ``current_algo``
    (``salt1``, ``salt2``, ``g``, ``p`` and optionally ``iterations``).
    ``secret_a`` pins the client ephemeral value; random when omitted.
    """

    algo = password_info.get("current_algo")
    if not algo:
        raise SrpError("Account has no password algorithm configured")

    salt1 = _to_bytes(algo["salt1"])
    salt2 = _to_bytes(algo["salt2"])
    g = int(algo["g"])
    p = _as_int(algo["p"])
    B = _as_int(password_info["srp_B"])
    if not 1 < B < p:
        raise SrpError("Server public value is out of range")

    g_padded = _pad(g)
    p_padded = _pad(p)
    B_padded = _pad(B)

    x = int.from_bytes(
        derive_password_secret(
            password, salt1, salt2, int(algo.get("iterations") or DEFAULT_ITERATIONS)
        ),
        "big",
    )
    k = int.from_bytes(_sha256(p_padded, g_padded), "big")

    a = secret_a if secret_a is not None else secrets.randbits(PAD_BYTES * 8)
    A = pow(g, a, p)
    if not 1 < A < p:
        raise SrpError("Client public value is out of range")
    A_padded = _pad(A)

    u = int.from_bytes(_sha256(A_padded, B_padded), "big")
    if u == 0:
        raise SrpError("Scrambling parameter is zero")

    v = pow(g, x, p)
    t = (B - k * v) % p
    S = pow(t, a + u * x, p)
    K = _sha256(_pad(S))

    hp = _sha256(p_padded)
    hg = _sha256(g_padded)
    hp_xor_hg = bytes(left ^ right for left, right in zip(hp, hg))
    M1 = _sha256(hp_xor_hg, _sha256(salt1), _sha256(salt2), A_padded, B_padded, K)

    return SrpCheck(srp_id=int(password_info["srp_id"]), A=A_padded, M1=M1)
