"""LLDP interface catalog."""
from dataclasses import dataclass, field

from ..config_engine.codec import quote
from ..config_engine.resource import Resource
from ..config_engine.schema import Block, Catalog, Flag


@dataclass
class PowerNegotiation:
    disable: bool = False
    enable: bool = False


POWER_NEGOTIATION = Catalog(PowerNegotiation, (
    Flag("disable", "disable"),
    Flag("enable", "enable"),
))


@dataclass
class LldpInterface:
    disable: bool = False
    enable: bool = False
    power_negotiation: list[PowerNegotiation] = field(default_factory=list)
    trap_notification_disable: bool = False
    trap_notification_enable: bool = False


LLDP_INTERFACE = Catalog(LldpInterface, (
    Flag("disable", "disable"),
    Flag("enable", "enable"),
    Block("power_negotiation", "power-negotiation", POWER_NEGOTIATION),
    Flag("trap_notification_disable", "trap-notification disable"),
    Flag("trap_notification_enable", "trap-notification enable"),
))


def lldp_interface(name: str) -> Resource:
    """LLDP options of one interface (``all`` for every interface)."""
    return Resource(
        path=f"protocols lldp interface {quote(name)}",
        catalog=LLDP_INTERFACE,
        label="lldp_interface",
    )
