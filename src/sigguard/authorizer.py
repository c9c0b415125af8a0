"""Authorizer — composes hashing, scheme verification and replay protection.

Flow for every call:

    digest (DomainHasher) → payload.authenticate (scheme verifier)
        → nonce / consumed-set / Lamport rotation → Authorization

Verification and its state change run inside one store transaction. If
anything raises, nothing is written: a rejected signature never moves a
counter, and an accepted Lamport signature always rotates its key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from sigguard.crypto.frost import FrostKeyRegistry, FrostVerifier
from sigguard.crypto.hashing import DomainHasher, StructSchema
from sigguard.errors import AuthorizationError, MalformedInput
from sigguard.models.signature import (
    SchemeTag,
    SignatureRecord,
    VerificationContext,
    decode_signature,
)
from sigguard.persistence.store import KeyValueStore
from sigguard.policy import AuthPolicy
from sigguard.replay.registry import ConsumedSet, NonceRegistry
from sigguard.replay.rotation import LamportRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Authorization:
    """Accepted call: who signed, and the state delta applied."""
    principal: str
    scheme: SchemeTag
    digest: bytes
    nonce: Optional[int] = None          # new counter value after consumption
    commitment: Optional[bytes] = None   # new Lamport pkh after rotation


class Authorizer:
    """Entry point for the calling layer.

    Usage:
        policy = AuthPolicy.from_env()
        store = InMemoryStore()
        auth = Authorizer.from_policy(policy, store, "Bridge", "1", BRIDGE_ADDRESS)
        digest = auth.digest(MINT_SCHEMA, fields)
        result = auth.authorize_raw(SchemeTag.ECDSA, sig_bytes, digest, nonce=0)
    """

    def __init__(
        self,
        store: KeyValueStore,
        hasher: DomainHasher,
        frost_verifier: Optional[FrostVerifier] = None,
        frost_keys: Optional[FrostKeyRegistry] = None,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._frost_verifier = frost_verifier or FrostVerifier()
        self._frost_keys = frost_keys or FrostKeyRegistry(self._frost_verifier)
        self._lamport = LamportRegistry(store, hasher)
        self._nonces = NonceRegistry(store)
        self._consumed = ConsumedSet(store)
        self._context = VerificationContext(
            frost_verifier=self._frost_verifier,
            frost_keys=self._frost_keys,
            lamport_registry=self._lamport,
        )

    @classmethod
    def from_policy(
        cls,
        policy: AuthPolicy,
        store: KeyValueStore,
        name: str,
        version: str,
        verifying_contract: Optional[str],
    ) -> Authorizer:
        hasher = policy.make_hasher(name, version, verifying_contract)
        return cls(store, hasher, frost_verifier=FrostVerifier(policy.frost_config()))

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def hasher(self) -> DomainHasher:
        return self._hasher

    @property
    def frost_keys(self) -> FrostKeyRegistry:
        return self._frost_keys

    @property
    def lamport(self) -> LamportRegistry:
        return self._lamport

    @property
    def nonces(self) -> NonceRegistry:
        return self._nonces

    @property
    def consumed(self) -> ConsumedSet:
        return self._consumed

    def digest(self, schema: StructSchema, fields: Mapping[str, Any]) -> bytes:
        return self._hasher.digest(schema, fields)

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def authorize(self, record: SignatureRecord, nonce: Optional[int] = None) -> Authorization:
        """Authenticate *record* and consume its nonce.

        ECDSA and FROST calls need the principal's current nonce. Lamport
        calls are ordered by their commitment counter instead; a supplied
        nonce must equal the counter the signature was made under.

        Raises:
            AuthorizationError: any rejection; state is unchanged.
        """
        try:
            with self._store.transaction() as txn:
                verified = record.payload.authenticate(record.digest, self._context, txn)

                if verified.rotation is not None:
                    if nonce is not None and nonce != verified.rotation.counter - 1:
                        raise MalformedInput("Lamport nonce must equal the commitment counter")
                    result = Authorization(
                        principal=verified.principal,
                        scheme=record.scheme,
                        digest=record.digest,
                        nonce=verified.rotation.counter,
                        commitment=verified.rotation.pkh,
                    )
                else:
                    if nonce is None:
                        raise MalformedInput(f"{record.scheme.value} calls require a nonce")
                    checked = NonceRegistry.check(txn, verified.principal, nonce)
                    new_nonce = NonceRegistry.commit(txn, verified.principal, checked)
                    result = Authorization(
                        principal=verified.principal,
                        scheme=record.scheme,
                        digest=record.digest,
                        nonce=new_nonce,
                    )
        except AuthorizationError as exc:
            logger.warning("Rejected %s call: %s", record.scheme.value, type(exc).__name__)
            raise

        logger.info("Authorized %s call for %s", record.scheme.value, result.principal)
        return result

    def authorize_order(self, record: SignatureRecord, namespace: str = "orders") -> Authorization:
        """Authenticate a content-addressed call and mark its digest consumed.

        The digest is derived from canonical order fields, so a malleable
        variant of the same signature hits the same consumed-set entry.
        """
        if record.scheme is SchemeTag.LAMPORT:
            raise MalformedInput("Lamport calls are ordered by rotation, not by consumed-set")
        try:
            with self._store.transaction() as txn:
                ConsumedSet.check(txn, namespace, record.digest)
                verified = record.payload.authenticate(record.digest, self._context, txn)
                ConsumedSet.commit(txn, namespace, record.digest)
        except AuthorizationError as exc:
            logger.warning("Rejected %s order: %s", record.scheme.value, type(exc).__name__)
            raise

        logger.info("Authorized %s order for %s", record.scheme.value, verified.principal)
        return Authorization(
            principal=verified.principal,
            scheme=record.scheme,
            digest=record.digest,
        )

    def authorize_raw(
        self,
        scheme: SchemeTag,
        raw: bytes,
        digest: bytes,
        nonce: Optional[int] = None,
        *,
        key_id: Optional[str] = None,
        principal: Optional[str] = None,
    ) -> Authorization:
        """Decode a raw signature encoding, then ``authorize`` it."""
        payload = decode_signature(scheme, raw, key_id=key_id, principal=principal)
        record = SignatureRecord(scheme=scheme, payload=payload, digest=digest)
        return self.authorize(record, nonce)
