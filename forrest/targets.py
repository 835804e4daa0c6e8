"""
Target Registry for resolving target references.

The registry maps reference names to the concrete target names that actions
attach to. It answers two questions only: is this name known, and must it
resolve. No handler is attached here; actions live in the ActionStore.

Reference syntax:
- "$NAME"  -> declared target NAME, resolved to its label
- "$NAME?" -> same, but optional: unknown NAME resolves to no target
- "name"   -> literal target name, no declaration needed
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

from forrest.constants import LIFECYCLE_TARGETS, OPTIONAL_MARKER, REFERENCE_MARKER
from forrest.errors import UnknownTargetError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TargetRef:
    """
    A resolved target reference.

    Attributes:
        ref: The reference as written by the caller
        name: Bare name (markers stripped)
        target: Concrete target name, None if an optional reference is unknown
        required: False when the reference carried the optional marker
    """
    ref: str
    name: str
    target: Optional[str]
    required: bool = True

    @property
    def resolved(self) -> bool:
        return self.target is not None


class TargetRegistry:
    """
    Registry of declared targets.

    Usage:
        registry = TargetRegistry.create_default()
        registry.register_targets({"S1": "s1"})

        registry.resolve("$S1").target       # "s1"
        registry.resolve("$S2?").target      # None
        registry.resolve("$S2")              # raises UnknownTargetError
        registry.resolve("custom").target    # "custom"
    """

    def __init__(self) -> None:
        """Initialize an empty target registry."""
        self._targets: dict[str, str] = {}

    def register_targets(self, targets: Mapping[str, str]) -> None:
        """
        Declare targets.

        Repeating a name is not an error. The first declaration of a name
        is kept; a conflicting label for an existing name is ignored.

        Args:
            targets: Mapping of reference name to target label
        """
        for name, label in targets.items():
            existing = self._targets.get(name)
            if existing is None:
                self._targets[name] = label
            elif existing != label:
                logger.warning(
                    f'Target "{name}" already declared as "{existing}", ignoring "{label}"'
                )

    def get(self, name: str) -> str:
        """
        Get the target label for a declared name.

        Args:
            name: Bare reference name

        Returns:
            The concrete target name

        Raises:
            UnknownTargetError: If the name was never declared
        """
        if name not in self._targets:
            raise UnknownTargetError(name)
        return self._targets[name]

    def has(self, name: str) -> bool:
        """Check if a reference name is declared."""
        return name in self._targets

    def list_targets(self) -> dict[str, str]:
        """
        List all declared targets.

        Returns:
            Copy of the name -> label mapping, in declaration order
        """
        return dict(self._targets)

    def resolve(self, ref: str) -> TargetRef:
        """
        Resolve a target reference.

        Args:
            ref: Target reference ("$NAME", "$NAME?" or a literal name)

        Returns:
            TargetRef describing the resolution

        Raises:
            UnknownTargetError: If a required $NAME reference is unknown
            ValueError: If the reference is empty
        """
        if not isinstance(ref, str) or not ref.strip(REFERENCE_MARKER + OPTIONAL_MARKER):
            raise ValueError(f"Invalid target reference: {ref!r}")

        required = not ref.endswith(OPTIONAL_MARKER)
        name = ref if required else ref[: -len(OPTIONAL_MARKER)]

        if not name.startswith(REFERENCE_MARKER):
            return TargetRef(ref=ref, name=name, target=name, required=required)

        name = name[len(REFERENCE_MARKER):]
        if name in self._targets:
            return TargetRef(ref=ref, name=name, target=self._targets[name], required=required)
        if required:
            raise UnknownTargetError(name)
        return TargetRef(ref=ref, name=name, target=None, required=False)

    @classmethod
    def create_default(cls) -> "TargetRegistry":
        """
        Create a registry with the lifecycle targets declared.

        Returns:
            TargetRegistry with START, SETTINGS, INIT_*, START_* and FINISH
        """
        registry = cls()
        registry.register_targets(LIFECYCLE_TARGETS)
        return registry
