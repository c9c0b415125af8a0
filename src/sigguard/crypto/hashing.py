"""Domain-separated structured-data hashing.

Every digest this package signs or verifies goes through here:

    digest          = keccak256(0x1901 ‖ domain_separator ‖ struct_hash)
    domain_separator = keccak256(DOMAIN_TYPEHASH ‖ name ‖ version ‖ chainId ‖ verifyingContract)
    struct_hash      = keccak256(typehash ‖ field_1 ‖ field_2 ‖ ...)

Each slot is a fixed 32-byte ABI word. Dynamic fields (``string``,
``bytes``) are hashed to a word before encoding, so two variable-length
fields are never adjacent in a preimage and ``("a", "bc")`` cannot collide
with ``("ab", "c")``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from eth_abi import encode
from eth_utils import is_address, keccak, to_canonical_address, to_checksum_address

from sigguard.errors import DomainMismatch, MalformedInput


EIP191_STRUCTURED_PREFIX = b"\x19\x01"

FIELD_TYPES = frozenset({"string", "bytes", "bytes32", "uint256", "address", "bool"})

_UINT256_MAX = 2**256 - 1


def keccak256(data: bytes) -> bytes:
    """Keccak-256 of raw bytes."""
    return keccak(data)


# ---------------------------------------------------------------------------
# Struct schemas
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StructSchema:
    """A named, ordered list of typed fields.

    The schema's type string is hashed into every struct hash, so two
    schemas with the same field values never share a digest.
    """

    name: str
    fields: tuple[tuple[str, str], ...]  # (field_type, field_name)

    def __post_init__(self) -> None:
        if not self.name.isidentifier():
            raise ValueError(f"Invalid struct name: {self.name!r}")
        seen: set[str] = set()
        for field_type, field_name in self.fields:
            if field_type not in FIELD_TYPES:
                raise ValueError(f"Unsupported field type '{field_type}' in {self.name}")
            if not field_name.isidentifier():
                raise ValueError(f"Invalid field name: {field_name!r}")
            if field_name in seen:
                raise ValueError(f"Duplicate field '{field_name}' in {self.name}")
            seen.add(field_name)

    def encode_type(self) -> str:
        inner = ",".join(f"{t} {n}" for t, n in self.fields)
        return f"{self.name}({inner})"

    @property
    def typehash(self) -> bytes:
        return keccak(text=self.encode_type())

    def hash_struct(self, values: Mapping[str, Any]) -> bytes:
        """Hash field values in schema order.

        Raises:
            MalformedInput: on missing, unexpected, or ill-typed fields.
        """
        names = [n for _, n in self.fields]
        missing = [n for n in names if n not in values]
        if missing:
            raise MalformedInput(f"{self.name}: missing fields {missing}")
        extra = sorted(set(values) - set(names))
        if extra:
            raise MalformedInput(f"{self.name}: unexpected fields {extra}")

        abi_types = ["bytes32"]
        abi_values: list[Any] = [self.typehash]
        for field_type, field_name in self.fields:
            abi_type, abi_value = _encode_field(field_type, field_name, values[field_name])
            abi_types.append(abi_type)
            abi_values.append(abi_value)
        return keccak(encode(abi_types, abi_values))


def _encode_field(field_type: str, field_name: str, value: Any) -> tuple[str, Any]:
    """Map one field to a fixed-width ABI slot."""
    if field_type == "string":
        if not isinstance(value, str):
            raise MalformedInput(f"Field '{field_name}' must be str")
        return "bytes32", keccak(text=value)
    if field_type == "bytes":
        if not isinstance(value, (bytes, bytearray)):
            raise MalformedInput(f"Field '{field_name}' must be bytes")
        return "bytes32", keccak(bytes(value))
    if field_type == "bytes32":
        if not isinstance(value, (bytes, bytearray)) or len(value) != 32:
            raise MalformedInput(f"Field '{field_name}' must be exactly 32 bytes")
        return "bytes32", bytes(value)
    if field_type == "uint256":
        if isinstance(value, bool) or not isinstance(value, int):
            raise MalformedInput(f"Field '{field_name}' must be int")
        if not 0 <= value <= _UINT256_MAX:
            raise MalformedInput(f"Field '{field_name}' out of uint256 range")
        return "uint256", value
    if field_type == "address":
        return "address", _canonical_address(value, field_name)
    if field_type == "bool":
        if not isinstance(value, bool):
            raise MalformedInput(f"Field '{field_name}' must be bool")
        return "bool", value
    raise MalformedInput(f"Unsupported field type '{field_type}'")


def _canonical_address(value: Any, label: str) -> bytes:
    if not is_address(value):
        raise MalformedInput(f"Field '{label}' is not a valid address")
    return to_canonical_address(value)


# ---------------------------------------------------------------------------
# Domain separation
# ---------------------------------------------------------------------------

DOMAIN_SCHEMA = StructSchema(
    name="EIP712Domain",
    fields=(
        ("string", "name"),
        ("string", "version"),
        ("uint256", "chainId"),
        ("address", "verifyingContract"),
    ),
)

# Only for allow-listed names that are reused across contracts.
CROSS_CONTRACT_DOMAIN_SCHEMA = StructSchema(
    name="EIP712Domain",
    fields=(
        ("string", "name"),
        ("string", "version"),
        ("uint256", "chainId"),
    ),
)


@dataclass(frozen=True)
class DomainSeparator:
    """Binds a digest to (name, version, chain, contract)."""

    name: str
    version: str
    chain_id: int
    verifying_contract: Optional[str] = None

    def __post_init__(self) -> None:
        if self.verifying_contract is not None:
            if not is_address(self.verifying_contract):
                raise MalformedInput("verifying_contract is not a valid address")
            object.__setattr__(
                self, "verifying_contract", to_checksum_address(self.verifying_contract)
            )


class DomainHasher:
    """Computes canonical digests for one verification context.

    The domain separator is hashed once, when the hasher is created. Build
    a new hasher per context; do not share one across chain forks.

    Usage:
        hasher = DomainHasher(DomainSeparator("Bridge", "1", 1, "0x..."))
        digest = hasher.digest(MINT_SCHEMA, {"to": ..., "amount": ...})
    """

    def __init__(
        self,
        domain: DomainSeparator,
        cross_contract_allow_list: Iterable[str] = (),
    ) -> None:
        self._domain = domain
        allow_list = frozenset(cross_contract_allow_list)

        if domain.verifying_contract is None:
            if domain.name not in allow_list:
                raise DomainMismatch(
                    f"Domain '{domain.name}' has no verifying contract and is not "
                    "on the cross-contract allow-list"
                )
            self._separator = CROSS_CONTRACT_DOMAIN_SCHEMA.hash_struct(
                {"name": domain.name, "version": domain.version, "chainId": domain.chain_id}
            )
        else:
            self._separator = DOMAIN_SCHEMA.hash_struct(
                {
                    "name": domain.name,
                    "version": domain.version,
                    "chainId": domain.chain_id,
                    "verifyingContract": domain.verifying_contract,
                }
            )

    @property
    def domain(self) -> DomainSeparator:
        return self._domain

    @property
    def separator(self) -> bytes:
        return self._separator

    def require_domain(self, chain_id: int, verifying_contract: Optional[str] = None) -> None:
        """Fail unless this hasher is bound to the given chain (and contract).

        Raises:
            DomainMismatch: if the chain or contract differs.
        """
        if chain_id != self._domain.chain_id:
            raise DomainMismatch(
                f"Chain mismatch: context {self._domain.chain_id}, caller {chain_id}"
            )
        if verifying_contract is None:
            return
        if self._domain.verifying_contract is None:
            return  # allow-listed cross-contract domain
        if to_canonical_address(verifying_contract) != to_canonical_address(
            self._domain.verifying_contract
        ):
            raise DomainMismatch("Verifying contract mismatch")

    def struct_hash(self, schema: StructSchema, values: Mapping[str, Any]) -> bytes:
        return schema.hash_struct(values)

    def digest(self, schema: StructSchema, values: Mapping[str, Any]) -> bytes:
        """Full domain-separated digest for a struct."""
        return self.digest_struct_hash(schema.hash_struct(values))

    def digest_struct_hash(self, struct_hash: bytes) -> bytes:
        if len(struct_hash) != 32:
            raise MalformedInput("struct hash must be 32 bytes")
        return keccak(EIP191_STRUCTURED_PREFIX + self._separator + struct_hash)
