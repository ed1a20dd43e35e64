# Field configuration and registry

import itertools
import logging
from dataclasses import dataclass

from particle_forge.error import ConfigurationError

logger = logging.getLogger(__name__)

_registry_ids = itertools.count(1)

FIELD_KINDS = {"scalar": 1, "vector": 3}


@dataclass(frozen=True)
class FieldConfig:
    """
    Configuration of one 3D field covering [-extent, extent] on every axis.
    """

    resolution: int = 64
    extent: float = 1.0
    decay: float = 0.99
    blur: float = 0.1
    blur_iterations: int = 1
    kind: str = "scalar"

    def __post_init__(self):
        if not 8 <= self.resolution <= 256:
            raise ConfigurationError(
                "Field resolution must be in [8, 256], got {}".format(self.resolution)
            )
        if not self.extent > 0.0:
            raise ConfigurationError("Field extent must be positive")
        if not 0.0 <= self.decay <= 1.0:
            raise ConfigurationError("Field decay must be in [0, 1], got {}".format(self.decay))
        if not 0.0 <= self.blur <= 1.0:
            raise ConfigurationError("Field blur must be in [0, 1], got {}".format(self.blur))
        if self.blur_iterations < 0:
            raise ConfigurationError("blur_iterations must be >= 0")
        if self.kind not in FIELD_KINDS:
            raise ConfigurationError("Unknown field kind '{}'".format(self.kind))

    @property
    def components(self) -> int:
        return FIELD_KINDS[self.kind]

    @property
    def num_cells(self) -> int:
        return self.resolution ** 3

    @property
    def num_values(self) -> int:
        return self.num_cells * self.components


@dataclass(frozen=True)
class FieldHandle:
    """
    Opaque handle returned by FieldRegistry.register, only valid for the
    registry (and so the simulation) that created it.
    """

    registry_id: int
    index: int
    name: str

    @property
    def constant_name(self) -> str:
        return "FIELD_" + self.name.upper()


class FieldRegistry:
    """
    Ordered collection of fields owned by one simulation
    """

    def __init__(self):
        self.registry_id = next(_registry_ids)
        self._names = []
        self._configs = []

    def register(self, name: str, config: FieldConfig = None) -> FieldHandle:
        if config is None:
            config = FieldConfig()
        if not name.isidentifier():
            raise ConfigurationError("Field name '{}' is not an identifier".format(name))
        if name.upper() in (n.upper() for n in self._names):
            raise ConfigurationError("Field '{}' is already registered".format(name))
        self._names.append(name)
        self._configs.append(config)
        handle = FieldHandle(self.registry_id, len(self._names) - 1, name)
        logger.info(
            "Registered %s field '%s' at index %d (resolution %d)",
            config.kind,
            name,
            handle.index,
            config.resolution,
        )
        return handle

    def resolve(self, handle) -> FieldHandle:
        """
        Validate a handle (or a field name) against this registry
        """
        if isinstance(handle, str):
            if handle not in self._names:
                raise ConfigurationError("Unknown field '{}'".format(handle))
            index = self._names.index(handle)
            return FieldHandle(self.registry_id, index, handle)
        if not isinstance(handle, FieldHandle):
            raise ConfigurationError(
                "Expected a FieldHandle or field name, got {!r}".format(handle)
            )
        if handle.registry_id != self.registry_id:
            raise ConfigurationError(
                "Field handle '{}' belongs to another simulation".format(handle.name)
            )
        if not 0 <= handle.index < len(self._names):
            raise ConfigurationError(
                "Field index {} out of range, {} fields registered".format(
                    handle.index, len(self._names)
                )
            )
        return handle

    def config(self, handle) -> FieldConfig:
        return self._configs[self.resolve(handle).index]

    def handles(self):
        return [FieldHandle(self.registry_id, i, n) for i, n in enumerate(self._names)]

    def offsets(self):
        """
        Offset of each field in the flat value buffer
        """
        offsets = []
        total = 0
        for config in self._configs:
            offsets.append(total)
            total += config.num_values
        return offsets, total

    def __len__(self):
        return len(self._names)

    def __iter__(self):
        return iter(zip(self.handles(), self._configs))
