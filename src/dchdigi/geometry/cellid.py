# src/dchdigi/geometry/cellid.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List

from ..errors import ConfigurationError, GeometryError

REQUIRED_FIELDS = ("superlayer", "layer", "nphi")


@dataclass(frozen=True)
class BitField:
    """One named field of a bit-packed cellID (negative width in the descriptor = signed)."""
    name: str
    offset: int
    width: int
    signed: bool = False

    @property
    def mask(self) -> int:
        return ((1 << self.width) - 1) << self.offset

    @property
    def min_value(self) -> int:
        return -(1 << (self.width - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        return (1 << (self.width - 1)) - 1 if self.signed else (1 << self.width) - 1

    def value(self, cellid: int) -> int:
        val = (int(cellid) & self.mask) >> self.offset
        if self.signed and (val & (1 << (self.width - 1))):
            val -= (1 << self.width)
        return val

    def pack(self, val: int) -> int:
        if not (self.min_value <= val <= self.max_value):
            raise ValueError(f"value {val} out of range for field '{self.name}' "
                             f"[{self.min_value}, {self.max_value}]")
        return (val & ((1 << self.width) - 1)) << self.offset


class BitFieldCoder:
    """
    Encoder/decoder for DD4hep-style descriptors, e.g.
    "system:5,superlayer:5,layer:4,nphi:11,stereosign:-2".

    Fields are "name:width" (packed after the previous field) or
    "name:offset:width".
    """

    def __init__(self, descriptor: str):
        self.descriptor = descriptor
        self.fields: List[BitField] = []
        self._by_name: Dict[str, BitField] = {}

        offset = 0
        for field_desc in descriptor.split(","):
            parts = field_desc.strip().split(":")
            if len(parts) == 2:
                name, width = parts[0], int(parts[1])
                this_offset = offset
            elif len(parts) == 3:
                name, this_offset, width = parts[0], int(parts[1]), int(parts[2])
            else:
                raise ConfigurationError(f"invalid cellID field descriptor {field_desc!r} in {descriptor!r}")
            if width == 0:
                raise ConfigurationError(f"cellID field {name!r} has zero width")
            offset = this_offset + abs(width)
            fld = BitField(name=name, offset=this_offset, width=abs(width), signed=width < 0)
            self.fields.append(fld)
            self._by_name[name] = fld

        if offset > 64:
            raise ConfigurationError(f"cellID descriptor {descriptor!r} needs {offset} bits (> 64)")

    def field(self, name: str) -> BitField:
        if name not in self._by_name:
            raise KeyError(f"Unknown cellID field: {name}")
        return self._by_name[name]

    def get(self, cellid: int, name: str) -> int:
        return self.field(name).value(cellid)

    def decode(self, cellid: int) -> Dict[str, int]:
        return {f.name: f.value(cellid) for f in self.fields}

    def encode(self, **values: int) -> int:
        """Pack named field values; unspecified fields are zero."""
        cellid = 0
        for name, val in values.items():
            cellid |= self.field(name).pack(int(val))
        return cellid


@dataclass(frozen=True, slots=True)
class CellAddress:
    """Decoded wire address. layer is 1-based and counts across superlayers."""
    superlayer: int
    local_layer: int
    nphi: int
    layer: int
    stereosign: int = 0


class CellIDDecoder:
    """Maps opaque cellIDs to CellAddress for a given layers-per-superlayer grouping."""

    def __init__(self, descriptor: str, nlayers_per_superlayer: int):
        self.coder = BitFieldCoder(descriptor)
        missing = [f for f in REQUIRED_FIELDS if f not in self.coder._by_name]
        if missing:
            raise ConfigurationError(
                f"cellID encoding {descriptor!r} lacks required field(s): {', '.join(missing)}"
            )
        self.nlayers_per_superlayer = int(nlayers_per_superlayer)
        self._has_stereo = "stereosign" in self.coder._by_name

    def layer(self, cellid: int) -> int:
        return (self.coder.get(cellid, "layer")
                + self.nlayers_per_superlayer * self.coder.get(cellid, "superlayer") + 1)

    def nphi(self, cellid: int) -> int:
        return self.coder.get(cellid, "nphi")

    def address(self, cellid: int) -> CellAddress:
        sl = self.coder.get(cellid, "superlayer")
        ll = self.coder.get(cellid, "layer")
        if ll >= self.nlayers_per_superlayer:
            raise GeometryError(
                f"cellID {cellid}: local layer {ll} >= layers per superlayer ({self.nlayers_per_superlayer})"
            )
        return CellAddress(
            superlayer=sl,
            local_layer=ll,
            nphi=self.coder.get(cellid, "nphi"),
            layer=ll + self.nlayers_per_superlayer * sl + 1,
            stereosign=self.coder.get(cellid, "stereosign") if self._has_stereo else 0,
        )

    def encode(self, layer: int, nphi: int, **extra: int) -> int:
        """Inverse of address(): build a cellID for a 1-based layer and phi cell."""
        if layer < 1:
            raise ValueError(f"layer must be >= 1, got {layer}")
        sl, ll = divmod(layer - 1, self.nlayers_per_superlayer)
        return self.coder.encode(superlayer=sl, layer=ll, nphi=nphi, **extra)
