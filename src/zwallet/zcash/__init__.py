"""Zcash primitives — network parameters, address grammar, keys, amounts."""

from zwallet.zcash.address import AddressType, ParsedAddress, is_shielded_address, parse_address
from zwallet.zcash.network import Network

__all__ = ["AddressType", "Network", "ParsedAddress", "is_shielded_address", "parse_address"]
