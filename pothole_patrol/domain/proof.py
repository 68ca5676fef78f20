"""Uniqueness-proof states.

A proof moves from :class:`NoProof` to :class:`PendingProof` once the trusted
host returned a payload, and to :class:`VerifiedProof` only after the
server-side verifier accepted it. Code that needs a verified credential
matches on :class:`VerifiedProof`, so an unverified payload is never sent as
one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Union


@dataclass(frozen=True)
class NoProof:
    verified: bool = False


@dataclass(frozen=True)
class PendingProof:
    payload: Mapping[str, Any]
    signal: str
    verified: bool = False


@dataclass(frozen=True)
class VerifiedProof:
    payload: Mapping[str, Any]
    signal: str
    verified_at: int
    verified: bool = True


ProofState = Union[NoProof, PendingProof, VerifiedProof]


def verified_payload(proof: ProofState) -> Mapping[str, Any] | None:
    if isinstance(proof, VerifiedProof):
        return proof.payload
    return None


__all__ = ["NoProof", "PendingProof", "VerifiedProof", "ProofState", "verified_payload"]
