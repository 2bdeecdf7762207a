"""
Compliance Reading Engine - Completeness Checker
Version: 1.0.1

Changelog:
v1.0.1 (2026-10-12): A recorded reading counts as data on its instance
v1.0.0 (2026-10-05): Initial checker

An asset is untested when any repeat_per_asset template has no instance for
it, or the instance exists with neither answers nor readings. Derived on
every call; instances change too often to cache.
"""

from typing import Iterable, List

from models.forms import EntityTemplate
from models.submission import Asset, EntityInstance, Reading
from services.instantiation import InstanceIndex


def untested_assets(templates: Iterable[EntityTemplate], assets: Iterable[Asset],
                    instances: Iterable[EntityInstance],
                    readings: Iterable[Reading] = ()) -> List[Asset]:
    repeatable = [t for t in templates if t.repeat_per_asset]
    assets = list(assets)
    if not repeatable or not assets:
        return []

    index = InstanceIndex(instances)
    measured = {r.entity_instance_id for r in readings}
    missing = []
    for asset in assets:
        for template in repeatable:
            instance = index.get(template.id, asset.id)
            if instance is None or not (instance.answers or instance.id in measured):
                missing.append(asset)
                break
    return missing


def asset_warnings(untested: Iterable[Asset]) -> List[str]:
    """One advisory line per untested asset"""
    return [f"untested: {asset.label or asset.id}" for asset in untested]
