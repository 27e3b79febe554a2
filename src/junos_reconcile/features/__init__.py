"""Feature catalogs: records, field rules and resource paths."""
from .bgp import BgpFamily, BgpGroup, BgpNeighbor, PrefixLimit, bgp_group, bgp_neighbor
from .lldp import LldpInterface, PowerNegotiation, lldp_interface

__all__ = [
    "BgpFamily",
    "BgpGroup",
    "BgpNeighbor",
    "PrefixLimit",
    "bgp_group",
    "bgp_neighbor",
    "LldpInterface",
    "PowerNegotiation",
    "lldp_interface",
]
