"""
Configuration kind registry.

Each of the nine kinds is one ``EntityKindDescriptor`` binding its payload
type, ORM model and validator.  LifecycleManager is generic over the
descriptor; a new kind is a new descriptor, not a new service.
"""

from __future__ import annotations

from dataclasses import dataclass

from payroll_kernel.domain.entities import (
    PAYLOAD_TYPES,
    ConfigurationPayload,
    EntityKind,
)
from payroll_kernel.domain.validators import VALIDATORS, EntityValidator
from payroll_kernel.models.configuration import CONFIGURATION_MODELS, ConfigurationModel


@dataclass(frozen=True)
class EntityKindDescriptor:
    kind: EntityKind
    payload_type: type[ConfigurationPayload]
    model: type[ConfigurationModel]
    validator: EntityValidator

    @property
    def entity_type(self) -> str:
        """Audit ``entity_type`` tag."""
        return self.kind.value


CONFIGURATION_KINDS: dict[EntityKind, EntityKindDescriptor] = {
    kind: EntityKindDescriptor(
        kind=kind,
        payload_type=PAYLOAD_TYPES[kind],
        model=CONFIGURATION_MODELS[kind],
        validator=VALIDATORS[kind],
    )
    for kind in EntityKind
}


def descriptor_for(kind: EntityKind | str) -> EntityKindDescriptor:
    """Descriptor by kind or tag; UnknownEntityKindError if unknown."""
    return CONFIGURATION_KINDS[EntityKind.parse(kind)]
