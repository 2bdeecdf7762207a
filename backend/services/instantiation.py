"""
Compliance Reading Engine - Instance Planner
Version: 1.0.0

Fans entity templates out into per-submission work items:
- repeat_per_asset templates -> one instance per (template, asset)
- all other templates        -> one general instance (asset_id None)

Planning is pure; the repository inserts the planned keys with
INSERT OR IGNORE against the (submission, template, asset) unique index, so
repeated or concurrent runs collapse onto the same instance set.
"""

from dataclasses import dataclass
from typing import Dict, Generic, Iterable, Iterator, List, Optional, TypeVar

from models.forms import EntityTemplate
from models.submission import Asset, EntityInstance

T = TypeVar("T")


@dataclass(frozen=True)
class InstanceKey:
    """Composite identity of an entity instance within one submission"""
    entity_template_id: int
    asset_id: Optional[int] = None


def key_of(instance: EntityInstance) -> InstanceKey:
    return InstanceKey(instance.entity_template_id, instance.asset_id)


class InstanceIndex(Generic[T]):
    """Composite-key map (template, asset) -> item, built once per request"""

    def __init__(self, items: Iterable[T] = (), key=None):
        self._key = key or key_of
        self._items: Dict[InstanceKey, T] = {}
        for item in items:
            self.add(item)

    def add(self, item: T) -> None:
        # First writer wins, mirroring the unique index
        self._items.setdefault(self._key(item), item)

    def get(self, entity_template_id: int, asset_id: Optional[int] = None) -> Optional[T]:
        return self._items.get(InstanceKey(entity_template_id, asset_id))

    def __contains__(self, key: InstanceKey) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items.values())


def required_keys(templates: Iterable[EntityTemplate],
                  assets: Iterable[Asset]) -> List[InstanceKey]:
    """Every instance key the templates demand for this asset list, in order"""
    assets = list(assets)
    keys: List[InstanceKey] = []
    for template in sorted(templates, key=lambda t: (t.sort_order, t.id)):
        if template.repeat_per_asset:
            keys.extend(InstanceKey(template.id, asset.id) for asset in assets)
        else:
            keys.append(InstanceKey(template.id, None))
    return keys


def plan_instances(templates: Iterable[EntityTemplate], assets: Iterable[Asset],
                   existing: Iterable[EntityInstance]) -> List[InstanceKey]:
    """
    Keys that still need an instance.

    Args:
        templates: Entity templates of the submission's form version
        assets: Assets currently applicable to the job
        existing: Instances already stored for the submission

    Returns:
        Missing keys, deduplicated, in template/asset order
    """
    index = InstanceIndex(existing)
    missing: List[InstanceKey] = []
    seen = set()
    for key in required_keys(templates, assets):
        if key in index or key in seen:
            continue
        seen.add(key)
        missing.append(key)
    return missing
