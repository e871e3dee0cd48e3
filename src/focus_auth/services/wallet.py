"""Sign-In With Ethereum verification backed by the wallet nonce ledger."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature
from eth_utils import ValidationError, is_address, to_checksum_address

from focus_auth.core.errors import AuthBridgeError, AuthErrorCode
from focus_auth.db.time import utcnow
from focus_auth.services.claims import Channel, ExternalClaim
from focus_auth.services.nonce_ledger import LedgerOutcome, NonceSnapshot, WalletNonceLedger

logger = logging.getLogger(__name__)

_HEADER_RE = re.compile(r"^(?P<domain>\S+) wants you to sign in with your Ethereum account:$")
_NONCE_RE = re.compile(r"^\s*Nonce:\s*([a-zA-Z0-9]+)\s*$", re.MULTILINE)
_FIELD_RE = re.compile(
    r"^(?P<key>URI|Version|Chain ID|Issued At|Expiration Time|Not Before|Request ID):\s*(?P<value>.*?)\s*$",
    re.MULTILINE,
)


@dataclass(frozen=True)
class SiweMessage:
    """Fields extracted from an EIP-4361 message.

    Parsing is lenient: only ``nonce`` is mandatory, everything else is
    None when the line is missing.
    """

    nonce: str
    domain: str | None = None
    address: str | None = None
    uri: str | None = None
    chain_id: str | None = None
    issued_at: str | None = None
    expiration_time: datetime | None = None


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_siwe_message(message: str) -> SiweMessage:
    """Extract the nonce and header fields of a SIWE message.

    Raises:
        AuthBridgeError: ``BAD_REQUEST`` when there is no ``Nonce:`` line or
            ``Expiration Time`` is not a timestamp.
    """
    nonce_match = _NONCE_RE.search(message)
    if nonce_match is None:
        raise AuthBridgeError(AuthErrorCode.BAD_REQUEST, "Nonce not found in message")

    lines = message.splitlines()
    domain = address = None
    if lines:
        header = _HEADER_RE.match(lines[0].strip())
        if header is not None:
            domain = header.group("domain")
            if len(lines) > 1 and lines[1].strip():
                address = lines[1].strip()

    fields = {m.group("key"): m.group("value") for m in _FIELD_RE.finditer(message)}
    expiration_time = None
    if fields.get("Expiration Time"):
        try:
            expiration_time = _parse_timestamp(fields["Expiration Time"])
        except ValueError as err:
            raise AuthBridgeError(AuthErrorCode.BAD_REQUEST, "Invalid Expiration Time") from err

    return SiweMessage(
        nonce=nonce_match.group(1),
        domain=domain,
        address=address,
        uri=fields.get("URI"),
        chain_id=fields.get("Chain ID"),
        issued_at=fields.get("Issued At"),
        expiration_time=expiration_time,
    )


def recover_signer(message: str, signature: str) -> str:
    """Return the checksummed address that produced an EIP-191 ``personal_sign`` signature."""
    try:
        recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
    except (BadSignature, ValidationError, ValueError, TypeError) as err:
        raise AuthBridgeError(
            AuthErrorCode.SIGNATURE_RECOVER_FAILED, "Signature could not be recovered"
        ) from err
    return to_checksum_address(recovered)


class WalletSiweVerifier:
    """Issue wallet nonces and turn signed SIWE messages into claims."""

    def __init__(
        self,
        ledger: WalletNonceLedger,
        *,
        siwe_domain: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.ledger = ledger
        self.siwe_domain = siwe_domain
        self._clock = clock

    def issue_nonce(self) -> NonceSnapshot:
        snapshot = self.ledger.create()
        logger.info("Issued wallet nonce %s", snapshot.nonce)
        return snapshot

    def verify(
        self,
        message: str,
        signature: str,
        claimed_address: str | None = None,
    ) -> ExternalClaim:
        """Check the message nonce, the signature and the claimed address, then consume the nonce.

        ``claimed_address`` defaults to the address line of the message.

        Raises:
            AuthBridgeError: ``BAD_REQUEST``, ``DOMAIN_MISMATCH``, ``NOT_FOUND``,
                ``EXPIRED``, ``SIGNATURE_RECOVER_FAILED``, ``ADDRESS_MISMATCH``,
                ``ALREADY_USED`` or ``REVOKED``.
        """
        if not message or not signature:
            raise AuthBridgeError(AuthErrorCode.BAD_REQUEST, "Message and signature are required")

        siwe = parse_siwe_message(message)
        if self.siwe_domain and siwe.domain != self.siwe_domain:
            logger.warning("Rejected SIWE message for domain %s", siwe.domain)
            raise AuthBridgeError(AuthErrorCode.DOMAIN_MISMATCH, "Message domain does not match")

        snapshot = self.ledger.get(siwe.nonce)
        if snapshot is None:
            raise AuthBridgeError(AuthErrorCode.NOT_FOUND, "Nonce not issued")
        if snapshot.expired:
            raise AuthBridgeError(AuthErrorCode.EXPIRED, "Nonce expired")
        if siwe.expiration_time is not None and self._clock() >= siwe.expiration_time:
            raise AuthBridgeError(AuthErrorCode.EXPIRED, "Message expired")

        recovered = recover_signer(message, signature)

        claimed = claimed_address or siwe.address
        if not claimed:
            raise AuthBridgeError(AuthErrorCode.BAD_REQUEST, "Address is required")
        for candidate in {claimed, siwe.address or claimed}:
            if not is_address(candidate) or to_checksum_address(candidate) != recovered:
                logger.warning("Wallet address mismatch: signer %s, claimed %s", recovered, candidate)
                raise AuthBridgeError(AuthErrorCode.ADDRESS_MISMATCH, "Address mismatch")

        if snapshot.used:
            self._raise_consumed(snapshot.used_by, recovered)

        outcome = self.ledger.mark_used(siwe.nonce, recovered)
        if outcome is LedgerOutcome.NOT_FOUND:
            raise AuthBridgeError(AuthErrorCode.NOT_FOUND, "Nonce not issued")
        if outcome is LedgerOutcome.EXPIRED:
            raise AuthBridgeError(AuthErrorCode.EXPIRED, "Nonce expired")
        if outcome is LedgerOutcome.ALREADY_USED:
            current = self.ledger.get(siwe.nonce)
            self._raise_consumed(current.used_by if current else None, recovered)

        logger.info("Wallet %s verified with nonce %s", recovered, siwe.nonce)
        return ExternalClaim(
            channel=Channel.WALLET,
            external_id=recovered,
            raw_proof_fields={
                "nonce": siwe.nonce,
                "domain": siwe.domain,
                "chain_id": siwe.chain_id,
                "address": recovered,
            },
        )

    @staticmethod
    def _raise_consumed(used_by: str | None, recovered: str) -> None:
        if used_by is not None and used_by != recovered:
            raise AuthBridgeError(AuthErrorCode.REVOKED, "Nonce was used by another address")
        raise AuthBridgeError(AuthErrorCode.ALREADY_USED, "Nonce already used")
