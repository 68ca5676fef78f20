from __future__ import annotations

from typing import Any, Mapping

from ..shared.errors import ProofVerificationError


class UnavailableProofProvider:
    """Proof provider for runs outside the trusted host app."""

    def is_available(self) -> bool:
        return False

    async def request_proof(self, signal: str, action: str) -> Mapping[str, Any]:
        raise ProofVerificationError("Uniqueness proofs are only available inside the host app")
