"""
streamswap.custody — asset movement collaborator.

The accounting core never holds balances itself; it asks a custody object to

- receive(denom, amount, frm)   move `amount` of `denom` from `frm` into the contract
- send(denom, amount, to)       move `amount` of `denom` from the contract to `to`

and treats any refusal as fatal for the whole operation.

`Bank` is a deterministic, multi-denom balance ledger for local runs, tests
and the CLI simulator. Its balances live in the same Journal as the contract's
records (`bal/<address>/<denom>`), so a reverted operation also reverts every
transfer it made.
"""

from __future__ import annotations

import logging
from typing import Dict, Protocol, runtime_checkable

import cbor2

from . import ledger
from .errors import CustodyError, InsufficientFunds
from .journal import Journal

log = logging.getLogger(__name__)

CONTRACT_ADDRESS = "streamswap"
BALANCE_PREFIX = b"bal/"


@runtime_checkable
class Custody(Protocol):
    address: str

    def receive(self, denom: str, amount: int, frm: str) -> None: ...

    def send(self, denom: str, amount: int, to: str) -> None: ...


def _check_amount(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise CustodyError("amount must be int", details={"type": type(amount).__name__})
    if amount < 0:
        raise CustodyError("amount must be non-negative", details={"amount": amount})


def _check_party(name: str, value: str) -> None:
    if not isinstance(value, str) or not value:
        raise CustodyError(f"{name} must be a non-empty string")
    if "/" in value:
        raise CustodyError(f"{name} must not contain '/'", details={name: value})


def _check_denom(denom: str) -> None:
    if not isinstance(denom, str) or not denom:
        raise CustodyError("denom must be a non-empty string")


class Bank:
    """
    In-memory, journaled token ledger.

    `address` is the account that holds funds on the contract's behalf.
    """

    def __init__(self, journal: Journal, address: str = CONTRACT_ADDRESS) -> None:
        _check_party("address", address)
        self.journal = journal
        self.address = address

    @staticmethod
    def _key(denom: str, addr: str) -> bytes:
        return BALANCE_PREFIX + f"{addr}/{denom}".encode("utf-8")

    # ------------------------------ reads ------------------------------------

    def balance(self, addr: str, denom: str) -> int:
        raw = self.journal.get(self._key(denom, addr))
        return 0 if raw is None else int(cbor2.loads(raw))

    def balances(self, addr: str) -> Dict[str, int]:
        """All non-zero balances of `addr`, keyed by denom."""
        prefix = self._key("", addr)
        out: Dict[str, int] = {}
        for k, v in self.journal.items(prefix):
            out[k[len(prefix):].decode("utf-8")] = int(cbor2.loads(v))
        return out

    # ------------------------------ writes -----------------------------------

    def _put(self, addr: str, denom: str, value: int) -> None:
        key = self._key(denom, addr)
        if value:
            self.journal.set(key, cbor2.dumps(value))
        else:
            self.journal.delete(key)

    def credit(self, addr: str, denom: str, amount: int) -> None:
        """Host/testing helper: mint `amount` of `denom` to `addr`."""
        _check_party("address", addr)
        _check_denom(denom)
        _check_amount(amount)
        self._put(addr, denom, ledger.checked_add(self.balance(addr, denom), amount))

    def debit(self, addr: str, denom: str, amount: int) -> None:
        _check_party("address", addr)
        _check_denom(denom)
        _check_amount(amount)
        have = self.balance(addr, denom)
        if amount > have:
            raise InsufficientFunds(account=addr, denom=denom, have=have, need=amount)
        self._put(addr, denom, have - amount)

    def transfer(self, denom: str, amount: int, frm: str, to: str) -> None:
        if amount == 0:
            return
        self.debit(frm, denom, amount)
        self.credit(to, denom, amount)
        log.debug("transfer %s %d %s -> %s", denom, amount, frm, to)

    # ------------------------------ Custody ----------------------------------

    def receive(self, denom: str, amount: int, frm: str) -> None:
        self.transfer(denom, amount, frm, self.address)

    def send(self, denom: str, amount: int, to: str) -> None:
        self.transfer(denom, amount, self.address, to)


__all__ = ["CONTRACT_ADDRESS", "Custody", "Bank"]
