"""Authorization policy — parameters loaded from ``auth_policy.json``.

The default file ships inside the package (``sigguard/config/``), so it is
found from a wheel install as well as from a checkout.

Overrides come from the environment (a ``.env`` file is honoured):

    SIGGUARD_CONFIG_DIR   directory holding auth_policy.json
    SIGGUARD_CHAIN_ID     chain identifier bound into every domain separator
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from sigguard.crypto.frost import TRANSCRIPT_TAG
from sigguard.crypto.hashing import DomainHasher, DomainSeparator
from sigguard.crypto.lamport import KEY_BITS


DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent / "config"
POLICY_FILENAME = "auth_policy.json"

SUPPORTED_TRANSCRIPTS = {"v1": TRANSCRIPT_TAG}


@dataclass(frozen=True)
class AuthPolicy:
    """Validated policy parameters."""

    chain_id: int
    require_x_below_order: bool = True
    transcript_version: str = "v1"
    lamport_key_bits: int = KEY_BITS
    cross_contract_allow_list: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if isinstance(self.chain_id, bool) or not isinstance(self.chain_id, int):
            raise ValueError("chain_id must be an int")
        if self.chain_id <= 0:
            raise ValueError(f"chain_id must be positive, got {self.chain_id}")
        if self.transcript_version not in SUPPORTED_TRANSCRIPTS:
            raise ValueError(
                f"Unsupported FROST transcript '{self.transcript_version}'. "
                f"Supported: {sorted(SUPPORTED_TRANSCRIPTS)}"
            )
        if self.lamport_key_bits != KEY_BITS:
            raise ValueError(f"lamport.key_bits must be {KEY_BITS}, got {self.lamport_key_bits}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthPolicy:
        if "chain_id" not in data:
            raise ValueError("Policy missing 'chain_id' field")
        frost = data.get("frost", {})
        lamport = data.get("lamport", {})
        hashing = data.get("hashing", {})
        return cls(
            chain_id=data["chain_id"],
            require_x_below_order=frost.get("require_x_below_order", True),
            transcript_version=frost.get("transcript_version", "v1"),
            lamport_key_bits=lamport.get("key_bits", KEY_BITS),
            cross_contract_allow_list=tuple(hashing.get("cross_contract_allow_list", [])),
        )

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> AuthPolicy:
        path = config_dir / POLICY_FILENAME
        if not path.exists():
            raise FileNotFoundError(f"Policy file not found: {path}")
        with path.open("r", encoding="utf-8") as handle:
            return cls.from_dict(json.load(handle))

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> AuthPolicy:
        """Load the policy, applying environment overrides."""
        load_dotenv(env_file)
        config_dir = Path(os.getenv("SIGGUARD_CONFIG_DIR", str(DEFAULT_CONFIG_DIR)))
        policy = cls.from_config_dir(config_dir)
        chain_override = os.getenv("SIGGUARD_CHAIN_ID")
        if chain_override:
            policy = cls(
                chain_id=int(chain_override),
                require_x_below_order=policy.require_x_below_order,
                transcript_version=policy.transcript_version,
                lamport_key_bits=policy.lamport_key_bits,
                cross_contract_allow_list=policy.cross_contract_allow_list,
            )
        return policy

    def frost_config(self) -> dict[str, Any]:
        return {"require_x_below_order": self.require_x_below_order}

    def make_hasher(
        self,
        name: str,
        version: str,
        verifying_contract: Optional[str],
    ) -> DomainHasher:
        """A hasher bound to this policy's chain and the given contract."""
        return DomainHasher(
            DomainSeparator(
                name=name,
                version=version,
                chain_id=self.chain_id,
                verifying_contract=verifying_contract,
            ),
            cross_contract_allow_list=self.cross_contract_allow_list,
        )
