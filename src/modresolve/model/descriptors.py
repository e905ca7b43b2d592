"""Module descriptors: the input model produced by manifest translation.

Descriptors are plain data. ``build_module`` turns one into a Module with
its capabilities and constraints; it validates everything before building
so a malformed descriptor never yields a half-constructed module.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import yaml

from ..constants import Constants
from ..errors import DescriptorError
from ..versioning import Version, VersionRange
from .capability import Capability, ModuleIdentity, Namespace
from .constraints import ConstraintKind, VersionConstraint
from .module import Module

VersionLike = Union[Version, str, None]
RangeLike = Union[VersionRange, str, None]


@dataclass
class ExportDescriptor:
    """An exported package."""

    name: str
    version: VersionLike = None
    uses: Sequence[str] = ()
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RequirementDescriptor:
    """A package import or module requirement."""

    name: str
    kind: ConstraintKind = ConstraintKind.PACKAGE_IMPORT
    version_range: RangeLike = None
    optional: bool = False
    multiple: bool = False
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class HostDescriptor:
    """Fragment-host requirement."""

    symbolic_name: str
    version_range: RangeLike = None
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ModuleDescriptor:
    """Everything the resolver needs to know about one module."""

    symbolic_name: str
    version: VersionLike = None
    singleton: bool = False
    exports: List[ExportDescriptor] = field(default_factory=list)
    requirements: List[RequirementDescriptor] = field(default_factory=list)
    fragment_host: Optional[HostDescriptor] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def identity(self) -> ModuleIdentity:
        return ModuleIdentity(self.symbolic_name, _version(self.version, self.symbolic_name))


def _version(value: VersionLike, where: str) -> Version:
    try:
        return Version.coerce(value)
    except (TypeError, ValueError) as exc:
        raise DescriptorError(f"{where}: invalid version {value!r}: {exc}") from exc


def _range(value: RangeLike, where: str) -> Optional[VersionRange]:
    if value is None:
        return None
    try:
        return VersionRange.parse(value)
    except (TypeError, ValueError) as exc:
        raise DescriptorError(f"{where}: invalid version range {value!r}: {exc}") from exc


def _require_name(value: Any, where: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise DescriptorError(f"{where}: name must be a non-empty string")
    return value.strip()


def _constraint(where: str, *args: Any, **kwargs: Any) -> VersionConstraint:
    try:
        return VersionConstraint(*args, **kwargs)
    except (TypeError, ValueError) as exc:
        raise DescriptorError(f"{where}: invalid attribute filter: {exc}") from exc


def build_module(descriptor: ModuleDescriptor) -> Module:
    """Translate a descriptor into an unresolved Module.

    Raises:
        DescriptorError: If a name, version, range or attribute filter is malformed.
    """
    where = _require_name(descriptor.symbolic_name, "module")
    version = _version(descriptor.version, where)

    exports = []
    for exp in descriptor.exports:
        name = _require_name(exp.name, f"{where} export")
        exports.append((name, _version(exp.version, f"{where} export {name}"), tuple(exp.uses), dict(exp.attributes)))

    requirements = []
    for req in descriptor.requirements:
        name = _require_name(req.name, f"{where} requirement")
        if req.kind is ConstraintKind.FRAGMENT_HOST:
            raise DescriptorError(f"{where}: fragment hosts are declared with fragment_host")
        requirements.append(
            _constraint(
                f"{where} requirement {name}",
                req.kind,
                name,
                _range(req.version_range, f"{where} requirement {name}"),
                optional=req.optional,
                multiple=req.multiple,
                attributes=req.attributes,
            )
        )

    host = None
    if descriptor.fragment_host is not None:
        hd = descriptor.fragment_host
        host_name = _require_name(hd.symbolic_name, f"{where} fragment host")
        host = _constraint(
            f"{where} fragment host",
            ConstraintKind.FRAGMENT_HOST,
            host_name,
            _range(hd.version_range, f"{where} fragment host"),
            attributes=hd.attributes,
        )

    module = Module(where, version, singleton=descriptor.singleton, attributes=descriptor.attributes)
    for name, exp_version, uses, attributes in exports:
        module._add_export(  # pylint: disable=protected-access
            Capability(Namespace.PACKAGE, name, exp_version, module, uses=uses, attributes=attributes)
        )
    for constraint in requirements:
        module._add_requirement(constraint)  # pylint: disable=protected-access
    if host is not None:
        module._set_fragment_host(host)  # pylint: disable=protected-access
    return module


def _as_list(value: Any, where: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise DescriptorError(f"{where} must be a list")
    return value


def _entry(value: Any, where: str) -> Dict[str, Any]:
    # Bare strings are shorthand for {"name": value}.
    if isinstance(value, str):
        return {"name": value}
    if not isinstance(value, dict):
        raise DescriptorError(f"{where} entries must be mappings or names")
    return value


def descriptor_from_mapping(data: Dict[str, Any]) -> ModuleDescriptor:
    """Build a ModuleDescriptor from a plain mapping (e.g. parsed YAML).

    Recognized keys: ``symbolic_name``, ``version``, ``singleton``,
    ``attributes``, ``exports`` (name, version, uses, attributes),
    ``imports`` and ``requires`` (name, range, optional, multiple,
    attributes) and ``fragment_host`` (name, range, attributes).
    """
    if not isinstance(data, dict):
        raise DescriptorError("module descriptor must be a mapping")
    name = _require_name(data.get("symbolic_name"), "module")

    exports = []
    for raw in _as_list(data.get("exports"), f"{name} exports"):
        entry = _entry(raw, f"{name} exports")
        exports.append(
            ExportDescriptor(
                name=entry.get("name"),
                version=_stringify(entry.get("version")),
                uses=tuple(_as_list(entry.get("uses"), f"{name} uses")),
                attributes=dict(entry.get("attributes") or {}),
            )
        )

    requirements = []
    for key, kind in (("imports", ConstraintKind.PACKAGE_IMPORT), ("requires", ConstraintKind.MODULE_REQUIRE)):
        for raw in _as_list(data.get(key), f"{name} {key}"):
            entry = _entry(raw, f"{name} {key}")
            requirements.append(
                RequirementDescriptor(
                    name=entry.get("name"),
                    kind=kind,
                    version_range=_stringify(entry.get("range")),
                    optional=bool(entry.get("optional", False)),
                    multiple=bool(entry.get("multiple", False)),
                    attributes=_filters(entry.get("attributes")),
                )
            )

    host = None
    if data.get("fragment_host") is not None:
        entry = _entry(data["fragment_host"], f"{name} fragment_host")
        host = HostDescriptor(
            symbolic_name=entry.get("name"),
            version_range=_stringify(entry.get("range")),
            attributes=_filters(entry.get("attributes")),
        )

    return ModuleDescriptor(
        symbolic_name=name,
        version=_stringify(data.get("version")),
        singleton=bool(data.get("singleton", False)),
        exports=exports,
        requirements=requirements,
        fragment_host=host,
        attributes=dict(data.get("attributes") or {}),
    )


def _stringify(value: Any) -> Any:
    # YAML reads "1.0" as a float
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def _filters(value: Any) -> Dict[str, Any]:
    filters = dict(value or {})
    if Constants.ATTR_MODULE_VERSION in filters:
        filters[Constants.ATTR_MODULE_VERSION] = _stringify(filters[Constants.ATTR_MODULE_VERSION])
    return filters


def load_descriptors(path: str) -> List[ModuleDescriptor]:
    """Load module descriptors from a YAML file.

    The document is either a list of module mappings or a mapping with a
    ``modules`` list.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            doc = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise DescriptorError(f"Malformed descriptor file {path}: {exc}") from exc
    return descriptors_from_document(doc)


def descriptors_from_document(doc: Any) -> List[ModuleDescriptor]:
    """Convert an already-parsed document into descriptors."""
    if isinstance(doc, dict):
        doc = doc.get("modules")
    items: Iterable[Any] = _as_list(doc, "modules")
    return [descriptor_from_mapping(item) for item in items]
