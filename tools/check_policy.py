#!/usr/bin/env python3
"""Authorization policy invariant checks against the packaged auth_policy.json."""

import json
import sys
from pathlib import Path

from sigguard.crypto.lamport import KEY_BITS
from sigguard.policy import DEFAULT_CONFIG_DIR, POLICY_FILENAME, SUPPORTED_TRANSCRIPTS


POLICY_PATH = DEFAULT_CONFIG_DIR / POLICY_FILENAME


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check(path: Path = POLICY_PATH) -> int:
    policy = load_json(path)
    errors: list[str] = []

    # --- Chain binding ---
    chain_id = policy.get("chain_id")
    if not isinstance(chain_id, int) or isinstance(chain_id, bool) or chain_id <= 0:
        errors.append(f"chain_id must be a positive int, got {chain_id!r}")

    # --- FROST ---
    frost = policy.get("frost", {})
    if frost.get("transcript_version", "v1") not in SUPPORTED_TRANSCRIPTS:
        errors.append(
            f"frost.transcript_version must be one of {sorted(SUPPORTED_TRANSCRIPTS)}"
        )
    if not isinstance(frost.get("require_x_below_order", True), bool):
        errors.append("frost.require_x_below_order must be a bool")

    # --- Lamport ---
    key_bits = policy.get("lamport", {}).get("key_bits", KEY_BITS)
    if key_bits != KEY_BITS:
        errors.append(f"lamport.key_bits must be {KEY_BITS}, got {key_bits}")

    # --- Cross-contract allow-list ---
    allow_list = policy.get("hashing", {}).get("cross_contract_allow_list", [])
    if not isinstance(allow_list, list):
        errors.append("hashing.cross_contract_allow_list must be a list")
    else:
        if len(set(allow_list)) != len(allow_list):
            errors.append("hashing.cross_contract_allow_list has duplicates")
        for name in allow_list:
            if not isinstance(name, str) or not name.strip():
                errors.append(f"allow-list entries must be non-empty strings, got {name!r}")

    if errors:
        print("Policy check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Policy check passed.")
    return 0


if __name__ == "__main__":
    target = Path(sys.argv[1]) if len(sys.argv) > 1 else POLICY_PATH
    raise SystemExit(check(target))
