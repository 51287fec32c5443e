"""
Address and handle value types.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Optional

from pydantic_core import core_schema
from web3 import Web3

from app.core.exceptions import BadRequestError, InvalidAddressError

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")
_FID_RE = re.compile(r"[0-9]+")


class Address(str):
    """Lowercase 0x-prefixed 20-byte hex address."""

    def __new__(cls, value: Any) -> "Address":
        if isinstance(value, Address):
            return value
        if not isinstance(value, str):
            raise InvalidAddressError(value)

        candidate = value.strip().lower()
        if not _ADDRESS_RE.match(candidate) or not Web3.is_address(candidate):
            raise InvalidAddressError(value)
        return super().__new__(cls, candidate)

    @classmethod
    def parse(cls, value: Any) -> Optional["Address"]:
        """Return an Address, or None when the value is malformed."""
        try:
            return cls(value)
        except InvalidAddressError:
            return None

    @classmethod
    def _validate(cls, value: Any) -> "Address":
        try:
            return cls(value)
        except InvalidAddressError as exc:
            raise ValueError(exc.message) from exc

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type, handler):
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )

    def short(self) -> str:
        """Abbreviated form used in labels, e.g. 0xabcd..."""
        return f"{self[:6]}..."


def normalize_addresses(values: Iterable[Any]) -> List[Address]:
    """
    Lowercase, validate and deduplicate addresses, preserving first-seen order.
    Malformed values are dropped.
    """
    seen = set()
    result: List[Address] = []
    for value in values or []:
        address = Address.parse(value)
        if address is not None and address not in seen:
            seen.add(address)
            result.append(address)
    return result


class HandleKind(str, Enum):
    """How a social identity was referenced."""

    USERNAME = "username"
    FID = "fid"


@dataclass(frozen=True)
class Handle:
    """A username or numeric id naming a social identity."""

    kind: HandleKind
    value: str

    @classmethod
    def from_query(cls, username: Optional[str] = None, fid: Optional[str] = None) -> "Handle":
        """Build a handle from request parameters; fid wins when both are given."""
        if fid is not None and str(fid).strip() != "":
            return cls.for_fid(fid)
        if username is not None and username.strip():
            return cls.for_username(username)
        raise BadRequestError("Either username or fid parameter is required")

    @classmethod
    def for_fid(cls, fid: Any) -> "Handle":
        text = str(fid).strip()
        if not _FID_RE.fullmatch(text):
            raise BadRequestError("fid must be a non-negative integer", {"fid": fid})
        return cls(HandleKind.FID, str(int(text)))

    @classmethod
    def for_username(cls, username: str) -> "Handle":
        return cls(HandleKind.USERNAME, username.strip().lstrip("@").lower())

    @property
    def is_fid(self) -> bool:
        return self.kind == HandleKind.FID

    @property
    def fid(self) -> Optional[int]:
        return int(self.value) if self.is_fid else None

    @property
    def cache_key(self) -> str:
        return f"profile:{self.kind.value}:{self.value}"

    def __str__(self) -> str:
        return self.value
