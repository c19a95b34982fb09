"""Tamper-evident fingerprints for cart views.

Canonical form (must stay stable across releases, any change invalidates
every fingerprint already issued to clients):

    {"cart_id": <int|null>, "currency": "<ISO>",
     "items": [[item_id, quantity, "<unit_price 2dp>"], ...sorted by item_id],
     "total": "<total 2dp>"}

serialized as UTF-8 JSON with sorted keys and `(",", ":")` separators, then
signed with HMAC using a server-side secret.
"""

import hashlib
import hmac
import json
from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")


def _money(value) -> str:
    return str(Decimal(value or 0).quantize(CENTS, rounding=ROUND_HALF_UP))


class IntegrityStamp:
    def __init__(self, secret: str, algorithm: str = "sha256"):
        if not secret:
            raise ValueError("IntegrityStamp requires a non-empty secret")
        self._secret = secret.encode("utf-8")
        self._digestmod = getattr(hashlib, algorithm)

    def canonical(self, view) -> bytes:
        items = sorted(
            ([int(line.id), int(line.quantity), _money(line.unit_price)] for line in view.items),
            key=lambda row: row[0],
        )
        payload = {
            "cart_id": view.id,
            "currency": view.currency,
            "items": items,
            "total": _money(view.total),
        }
        return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")

    def stamp(self, view) -> str:
        return hmac.new(self._secret, self.canonical(view), self._digestmod).hexdigest()

    def verify(self, view, fingerprint: str) -> bool:
        if not fingerprint:
            return False
        return hmac.compare_digest(self.stamp(view), str(fingerprint))
