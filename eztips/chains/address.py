"""
Address Resolution

Hedera accounts have two incompatible identifiers:

- the native id, shard.realm.num (0.0.123456), optionally followed by a
  checksum suffix (0.0.123456-vfmkw);
- the EVM address, 0x plus 20 bytes, which is what contract calls accept.

to_contract_address() asks the mirror node for the alias bound to an account.
to_native_id() is a pure numeric reinterpretation of a long-zero address and
is only used for bootstrap cases such as a contract configured in EVM form.
The two are not inverses.
"""

import re

import structlog
from web3 import Web3

from ..errors import AddressResolutionError
from .mirror_client import MirrorNodeClient

logger = structlog.get_logger(__name__)

NATIVE_PREFIX = "0.0."

_EVM_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")
_NATIVE_ID = re.compile(r"^\d+\.\d+\.\d+$")
_NATIVE_ID_WITH_CHECKSUM = re.compile(r"^(\d+\.\d+\.\d+)-[a-z]{5}$")


def is_contract_address(value: str) -> bool:
    """True if value is already a 0x-prefixed 20-byte address."""
    return bool(_EVM_ADDRESS.match(value))


def is_native_id(value: str) -> bool:
    """True if value is a shard.realm.num id, with or without checksum."""
    return bool(_NATIVE_ID.match(value) or _NATIVE_ID_WITH_CHECKSUM.match(value))


def strip_checksum(native_id: str) -> str:
    """Drop a trailing -abcde checksum suffix from a native id."""
    match = _NATIVE_ID_WITH_CHECKSUM.match(native_id)
    return match.group(1) if match else native_id


def to_native_id(address: str) -> str:
    """
    Reinterpret a 20-byte address as a native account id.

    Pure and deterministic: 0x...0001e240 -> 0.0.123456.

    Raises:
        ValueError: If address is not 0x plus 40 hex characters
    """
    if not is_contract_address(address):
        raise ValueError(f"Not a 20-byte EVM address: {address!r}")
    return f"{NATIVE_PREFIX}{int(address[2:], 16)}"


def long_zero_address(native_id: str) -> str:
    """Encode an account number as a long-zero EVM address (0x000...num)."""
    num = int(strip_checksum(native_id).rsplit(".", 1)[-1])
    return "0x" + format(num, "040x")


class AddressResolver:
    """
    Converts native account ids into contract-callable addresses.

    An account without a bound EVM alias cannot be a contract-call recipient,
    so resolution failures are terminal and never retried.
    """

    def __init__(self, mirror: MirrorNodeClient):
        self._mirror = mirror

    async def to_contract_address(self, native_id: str) -> str:
        """
        Resolve a recipient to the address passed to the tip contract.

        Args:
            native_id: Native account id (0.0.xxxxx[-checksum]) or an EVM address

        Returns:
            Checksummed EVM address

        Raises:
            AddressResolutionError: If the id is malformed, unknown, or has no
                bound alias
            MirrorNodeError: If the address registry cannot be reached
        """
        value = native_id.strip()
        if is_contract_address(value):
            return value

        if not is_native_id(value):
            raise AddressResolutionError(native_id, "not a valid account id")

        account_id = strip_checksum(value)

        # MirrorNodeError propagates: an unreachable registry is not proof
        # that the alias is missing.
        evm_address = await self._mirror.get_evm_alias(account_id)

        if not evm_address:
            logger.warning("address_alias_missing", account_id=account_id)
            raise AddressResolutionError(account_id)

        if not evm_address.startswith("0x"):
            evm_address = "0x" + evm_address
        if not is_contract_address(evm_address):
            raise AddressResolutionError(account_id, f"registry returned malformed alias {evm_address!r}")

        resolved: str = Web3.to_checksum_address(evm_address)
        logger.debug("address_resolved", account_id=account_id, evm_address=resolved)
        return resolved

    @staticmethod
    def to_native_id(address: str) -> str:
        """Pure reinterpretation of an address as a native id."""
        return to_native_id(address)
