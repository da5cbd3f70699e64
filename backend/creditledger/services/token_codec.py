"""Redemption token codec: the QR payload a scanning terminal presents.

Current tokens are compact JSON documents signed with HMAC-SHA256 over the
canonical serialization of every other field. Legacy plain-text tokens
(``CREDIT:<code>:<amount>:<owner>:<epoch-millis>``) still decode, but carry no
digest, so everything in them is advisory until checked against the ledger.
"""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from creditledger.core.config import settings
from creditledger.models.shared import as_utc, utc_now
from creditledger.services.errors import (
    ExpiredTokenError,
    MalformedTokenError,
    TokenIntegrityError,
)

logger = logging.getLogger(__name__)

TOKEN_TYPE = "credit_note"
TOKEN_VERSION = "2.0"
LEGACY_VERSION = "1.0"
LEGACY_PREFIX = "CREDIT:"

_REQUIRED_FIELDS = ("type", "version", "code", "amount", "owner_ref", "merchant_id", "issued_at")


@dataclass(frozen=True)
class TokenSummary:
    """What a token says about its instrument. Never authoritative for balances."""

    note_number: str
    amount: Decimal
    owner_ref: str
    merchant_id: str
    issued_at: datetime
    version: str = TOKEN_VERSION
    legacy: bool = False


def _canonical(fields: dict[str, Any]) -> bytes:
    return json.dumps(fields, sort_keys=True, separators=(",", ":")).encode("utf-8")


def sign_fields(fields: dict[str, Any], secret: str) -> str:
    """HMAC-SHA256 hex digest of the canonical form of ``fields``."""
    return hmac.new(secret.encode("utf-8"), _canonical(fields), hashlib.sha256).hexdigest()


class TokenCodec:
    def __init__(self, secret: str | None = None, max_age_hours: int | None = None):
        self.secret = secret if secret is not None else settings.TOKEN_SECRET
        self.max_age_hours = (
            max_age_hours if max_age_hours is not None else settings.TOKEN_MAX_AGE_HOURS
        )

    def encode(self, summary: TokenSummary) -> str:
        fields = {
            "type": TOKEN_TYPE,
            "version": TOKEN_VERSION,
            "code": summary.note_number,
            "amount": str(summary.amount),
            "owner_ref": summary.owner_ref,
            "merchant_id": summary.merchant_id,
            "issued_at": as_utc(summary.issued_at).isoformat(),  # type: ignore[union-attr]
        }
        fields["hash"] = sign_fields(fields, self.secret)
        return _canonical(fields).decode("utf-8")

    @staticmethod
    def encode_legacy(summary: TokenSummary) -> str:
        """Plain-text form for terminals that cannot print JSON payloads."""
        millis = int(as_utc(summary.issued_at).timestamp() * 1000)  # type: ignore[union-attr]
        return (
            f"{LEGACY_PREFIX}{summary.note_number}:{summary.amount}:{summary.owner_ref}:{millis}"
        )

    def decode(self, token: str, now: datetime | None = None) -> TokenSummary:
        """Decode and verify ``token``.

        Raises:
            MalformedTokenError: not a token in any known format.
            TokenIntegrityError: the digest is missing or does not match.
            ExpiredTokenError: issued longer ago than the configured maximum age.
        """
        raw = token.strip()
        if raw.startswith(LEGACY_PREFIX):
            return self._decode_legacy(raw, now)

        try:
            data = json.loads(raw)
        except ValueError:
            raise MalformedTokenError("Token is not valid JSON") from None
        if not isinstance(data, dict):
            raise MalformedTokenError("Token payload must be an object")

        digest = data.pop("hash", None)
        missing = [f for f in _REQUIRED_FIELDS if data.get(f) in (None, "")]
        if missing:
            raise MalformedTokenError(f"Token is missing fields: {', '.join(missing)}")
        if data["type"] != TOKEN_TYPE:
            raise MalformedTokenError(f"Unexpected token type {data['type']!r}")

        if not isinstance(digest, str) or not hmac.compare_digest(
            sign_fields(data, self.secret), digest
        ):
            raise TokenIntegrityError("Token integrity check failed")

        summary = TokenSummary(
            note_number=str(data["code"]),
            amount=self._parse_amount(str(data["amount"])),
            owner_ref=str(data["owner_ref"]),
            merchant_id=str(data["merchant_id"]),
            issued_at=self._parse_issued_at(str(data["issued_at"])),
            version=str(data["version"]),
        )
        self._check_age(summary.issued_at, now)
        return summary

    def _decode_legacy(self, raw: str, now: datetime | None) -> TokenSummary:
        parts = raw.split(":")
        if len(parts) < 4 or not parts[1]:
            raise MalformedTokenError("Invalid legacy token format")

        code, amount_text = parts[1], parts[2]
        rest = parts[3:]
        issued_at = None
        # Owner references may themselves contain colons; a trailing all-digit
        # segment is the issue timestamp.
        if len(rest) > 1 and rest[-1].isdigit():
            issued_at = datetime.fromtimestamp(int(rest[-1]) / 1000, tz=UTC)
            rest = rest[:-1]
        owner_ref = ":".join(rest)

        amount = self._parse_amount(amount_text)
        if amount <= 0:
            raise MalformedTokenError("Invalid amount in legacy token")
        if issued_at is not None:
            self._check_age(issued_at, now)

        logger.info("Decoded legacy token for %s; amount is advisory only", code)
        return TokenSummary(
            note_number=code,
            amount=amount,
            owner_ref=owner_ref,
            merchant_id="",
            issued_at=issued_at or (now or utc_now()),
            version=LEGACY_VERSION,
            legacy=True,
        )

    @staticmethod
    def _parse_amount(text: str) -> Decimal:
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise MalformedTokenError(f"Invalid amount {text!r} in token") from None
        if not amount.is_finite():
            raise MalformedTokenError(f"Invalid amount {text!r} in token")
        return amount

    @staticmethod
    def _parse_issued_at(text: str) -> datetime:
        try:
            return as_utc(datetime.fromisoformat(text))  # type: ignore[return-value]
        except ValueError:
            raise MalformedTokenError(f"Invalid issued_at {text!r} in token") from None

    def _check_age(self, issued_at: datetime, now: datetime | None) -> None:
        if self.max_age_hours <= 0:
            return
        if (now or utc_now()) - issued_at > timedelta(hours=self.max_age_hours):
            raise ExpiredTokenError("Token is older than the maximum allowed age")
