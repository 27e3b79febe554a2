"""Config Engine - reconcile declarative records with Junos configuration.

The Config Engine turns a structured record into set/delete lines, applies
them under the exclusive candidate lock and reads the result back:
- Records and their field rules are declared once per feature (Catalog)
- The same catalog drives the command builder and the reconstructor
- Failed or cancelled edits always clear the candidate
- Dry-run mode appends the lines to a local file instead

Usage:
    from junos_reconcile.config_engine import ConfigEngine
    from junos_reconcile.devices import DeviceConfig
    from junos_reconcile.features.bgp import BgpGroup, bgp_group

    engine = ConfigEngine(DeviceConfig(host="192.0.2.10"))
    result = await engine.create(
        bgp_group("UPLINKS"), BgpGroup(type="external", hold_time=30)
    )
"""

from .engine import ConfigEngine
from .schema import (
    ApplyResult,
    Block,
    Catalog,
    FieldRule,
    Flag,
    Integer,
    KeyedBlock,
    Multi,
    Scalar,
)
from .codec import config_lines, decode_secret, encode_secret, quote, unquote
from .parser import ConfigParser
from .generator import CommandGenerator
from .resource import Resource
from .guard import ReadGuard
from .fake_apply import SetFile

__all__ = [
    # Main engine
    "ConfigEngine",
    "ApplyResult",
    # Field rules
    "Catalog",
    "FieldRule",
    "Scalar",
    "Integer",
    "Flag",
    "Multi",
    "Block",
    "KeyedBlock",
    # Line codec
    "quote",
    "unquote",
    "config_lines",
    "encode_secret",
    "decode_secret",
    # Components (for advanced use)
    "ConfigParser",
    "CommandGenerator",
    "Resource",
    "ReadGuard",
    "SetFile",
]
