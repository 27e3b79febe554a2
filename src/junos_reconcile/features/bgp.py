"""BGP group and neighbor catalogs.

Groups and neighbors share most options; a group also carries its type.
Resources live under ``protocols bgp`` of the master instance or of a
routing instance.
"""
from dataclasses import dataclass, field

from ..config_engine.codec import quote
from ..config_engine.resource import Resource
from ..config_engine.schema import Block, Catalog, Flag, Integer, KeyedBlock, Multi, Scalar

DEFAULT_ROUTING_INSTANCE = "master"


@dataclass
class PrefixLimit:
    maximum: int = -1
    teardown: int = -1
    teardown_idle_timeout: int = -1
    teardown_idle_timeout_forever: bool = False


PREFIX_LIMIT = Catalog(PrefixLimit, (
    Integer("maximum", "maximum"),
    Integer("teardown", "teardown"),
    Integer("teardown_idle_timeout", "teardown idle-timeout"),
    Flag("teardown_idle_timeout_forever", "teardown idle-timeout forever"),
))


@dataclass
class BgpFamily:
    """``family <type> <nlri_type>`` entry, e.g. ``family inet unicast``."""
    type: str = ""
    nlri_type: str = ""
    accepted_prefix_limit: list[PrefixLimit] = field(default_factory=list)
    prefix_limit: list[PrefixLimit] = field(default_factory=list)


FAMILY = Catalog(BgpFamily, (
    Block("accepted_prefix_limit", "accepted-prefix-limit", PREFIX_LIMIT),
    Block("prefix_limit", "prefix-limit", PREFIX_LIMIT),
))

FAMILY_BLOCK = KeyedBlock("family", "family", key="type", catalog=FAMILY, qualifier="nlri_type")


@dataclass
class BfdLivenessDetection:
    authentication_algorithm: str = ""
    authentication_key_chain: str = ""
    authentication_loose_check: bool = False
    detection_time_threshold: int = -1
    holddown_interval: int = -1
    minimum_interval: int = -1
    minimum_receive_interval: int = -1
    multiplier: int = -1
    session_mode: str = ""
    transmit_interval_minimum_interval: int = -1
    transmit_interval_threshold: int = -1
    version: str = ""


BFD_LIVENESS_DETECTION = Catalog(BfdLivenessDetection, (
    Scalar("authentication_algorithm", "authentication algorithm"),
    Scalar("authentication_key_chain", "authentication key-chain"),
    Flag("authentication_loose_check", "authentication loose-check"),
    Integer("detection_time_threshold", "detection-time threshold"),
    Integer("holddown_interval", "holddown-interval"),
    Integer("minimum_interval", "minimum-interval"),
    Integer("minimum_receive_interval", "minimum-receive-interval"),
    Integer("multiplier", "multiplier"),
    Scalar("session_mode", "session-mode"),
    Integer("transmit_interval_minimum_interval", "transmit-interval minimum-interval"),
    Integer("transmit_interval_threshold", "transmit-interval threshold"),
    Scalar("version", "version"),
))


@dataclass
class GracefulRestart:
    disable: bool = False
    restart_time: int = -1
    stale_route_time: int = -1


GRACEFUL_RESTART = Catalog(GracefulRestart, (
    Flag("disable", "disable"),
    Integer("restart_time", "restart-time"),
    Integer("stale_route_time", "stale-routes-time"),
))


@dataclass
class BgpOptions:
    """Options shared by groups and neighbors."""
    accept_remote_nexthop: bool = False
    advertise_external: bool = False
    advertise_external_conditional: bool = False
    advertise_inactive: bool = False
    advertise_peer_as: bool = False
    no_advertise_peer_as: bool = False
    as_override: bool = False
    damping: bool = False
    log_updown: bool = False
    mtu_discovery: bool = False
    multihop: bool = False
    multipath: bool = False
    passive: bool = False
    remove_private: bool = False
    hold_time: int = -1
    local_preference: int = -1
    metric_out: int = -1
    metric_out_igp: bool = False
    metric_out_igp_delay_med_update: bool = False
    metric_out_minimum_igp: bool = False
    out_delay: int = -1
    preference: int = -1
    authentication_algorithm: str = ""
    authentication_key: str = ""
    authentication_key_chain: str = ""
    local_address: str = ""
    local_as: str = ""
    local_as_alias: bool = False
    local_as_loops: int = -1
    local_as_no_prepend_global_as: bool = False
    local_as_private: bool = False
    local_interface: str = ""
    peer_as: str = ""
    export: list[str] = field(default_factory=list)
    import_: list[str] = field(default_factory=list)
    bfd_liveness_detection: list[BfdLivenessDetection] = field(default_factory=list)
    graceful_restart: list[GracefulRestart] = field(default_factory=list)
    family: list[BgpFamily] = field(default_factory=list)


@dataclass
class BgpGroup(BgpOptions):
    type: str = ""  # internal or external


@dataclass
class BgpNeighbor(BgpOptions):
    pass


OPTION_RULES = (
    Flag("accept_remote_nexthop", "accept-remote-nexthop"),
    Flag("advertise_external", "advertise-external"),
    Flag("advertise_external_conditional", "advertise-external conditional"),
    Flag("advertise_inactive", "advertise-inactive"),
    Flag("advertise_peer_as", "advertise-peer-as"),
    Flag("no_advertise_peer_as", "no-advertise-peer-as"),
    Flag("as_override", "as-override"),
    Flag("damping", "damping"),
    Flag("log_updown", "log-updown"),
    Flag("mtu_discovery", "mtu-discovery"),
    Flag("multihop", "multihop"),
    Flag("multipath", "multipath"),
    Flag("passive", "passive"),
    Flag("remove_private", "remove-private"),
    Integer("hold_time", "hold-time"),
    Integer("local_preference", "local-preference"),
    Integer("metric_out", "metric-out"),
    Flag("metric_out_igp", "metric-out igp"),
    Flag("metric_out_igp_delay_med_update", "metric-out igp delay-med-update"),
    Flag("metric_out_minimum_igp", "metric-out minimum-igp"),
    Integer("out_delay", "out-delay"),
    Integer("preference", "preference"),
    Scalar("authentication_algorithm", "authentication-algorithm"),
    Scalar("authentication_key", "authentication-key", secret=True),
    Scalar("authentication_key_chain", "authentication-key-chain"),
    Scalar("local_address", "local-address"),
    Scalar("local_as", "local-as"),
    Flag("local_as_alias", "local-as alias"),
    Integer("local_as_loops", "local-as loops"),
    Flag("local_as_no_prepend_global_as", "local-as no-prepend-global-as"),
    Flag("local_as_private", "local-as private"),
    Scalar("local_interface", "local-interface"),
    Scalar("peer_as", "peer-as"),
    Multi("export", "export"),
    Multi("import_", "import"),
    Block("bfd_liveness_detection", "bfd-liveness-detection", BFD_LIVENESS_DETECTION),
    Block("graceful_restart", "graceful-restart", GRACEFUL_RESTART),
    FAMILY_BLOCK,
)

BGP_GROUP = Catalog(BgpGroup, (Scalar("type", "type"),) + OPTION_RULES)
BGP_NEIGHBOR = Catalog(BgpNeighbor, OPTION_RULES)


def _routing_instance_path(routing_instance: str) -> str:
    return f"routing-instances {quote(routing_instance)}"


def _bgp_path(routing_instance: str) -> str:
    if routing_instance == DEFAULT_ROUTING_INSTANCE:
        return "protocols bgp"
    return f"{_routing_instance_path(routing_instance)} protocols bgp"


def _instance_preconditions(routing_instance: str) -> tuple[tuple[str, str], ...]:
    if routing_instance == DEFAULT_ROUTING_INSTANCE:
        return ()
    return (
        (_routing_instance_path(routing_instance), f"routing instance {routing_instance}"),
    )


def bgp_group(name: str, routing_instance: str = DEFAULT_ROUTING_INSTANCE) -> Resource:
    """BGP group resource. Outside the master instance the instance must exist."""
    return Resource(
        path=f"{_bgp_path(routing_instance)} group {quote(name)}",
        catalog=BGP_GROUP,
        label="bgp_group",
        preconditions=_instance_preconditions(routing_instance),
    )


def bgp_neighbor(
    ip: str,
    group: str,
    routing_instance: str = DEFAULT_ROUTING_INSTANCE,
) -> Resource:
    """BGP neighbor resource inside ``group``, which must already exist."""
    group_path = f"{_bgp_path(routing_instance)} group {quote(group)}"
    return Resource(
        path=f"{group_path} neighbor {ip}",
        catalog=BGP_NEIGHBOR,
        label="bgp_neighbor",
        preconditions=_instance_preconditions(routing_instance)
        + ((group_path, f"bgp group {group}"),),
    )
