"""
Cross-chunk record merger.

Scalars: first non-empty value across chunks, in chunk order (NO_INFO
counts as empty but is kept when nothing better exists).
Sections: merged field by field with the same rule.
Lists: concatenated and de-duplicated by identity key, first occurrence wins.
"""

from typing import Any, List, Optional, Sequence

from pydantic import BaseModel

from catalog_sync.schemas.profile import UniversityProfile, is_blank


def _item_key(item: Any) -> Optional[str]:
    if hasattr(item, "identity_key"):
        key = item.identity_key()
    elif isinstance(item, str):
        key = item.strip().casefold()
    else:
        return None
    return key or None


def merge_lists(lists: Sequence[list]) -> list:
    merged = []
    seen = set()
    for items in lists:
        for item in items or []:
            key = _item_key(item)
            if key is not None:
                if key in seen:
                    continue
                seen.add(key)
            merged.append(item.model_copy(deep=True) if isinstance(item, BaseModel) else item)
    return merged


def _first_filled(values: Sequence[Any]) -> Any:
    for value in values:
        if not is_blank(value):
            return value
    for value in values:
        if value is not None:
            return value
    return None


def _merge_values(values: Sequence[Any]) -> Any:
    present = [value for value in values if value is not None]
    if not present:
        return None
    if all(isinstance(value, list) for value in present):
        return merge_lists(present)
    if all(isinstance(value, BaseModel) for value in present):
        return merge_models(present)
    return _first_filled(values)


def merge_models(models: Sequence[BaseModel]) -> BaseModel:
    """Field-wise merge of models of the same type."""
    first = models[0]
    if len(models) == 1:
        return first.model_copy(deep=True)
    update = {
        name: _merge_values([getattr(model, name) for model in models])
        for name in type(first).model_fields
    }
    return first.model_copy(update=update)


def _ensure_unique_program_ids(profile: UniversityProfile) -> None:
    used = set()
    counter = 0
    for program in profile.programs:
        if program.id and program.id not in used:
            used.add(program.id)
            continue
        while f"prog-{counter}" in used:
            counter += 1
        program.id = f"prog-{counter}"
        used.add(program.id)


def merge_records(records: List[UniversityProfile]) -> UniversityProfile:
    """
    Combine per-chunk partial records into one.

    A single record is returned unchanged. Earlier chunks take precedence
    for scalar fields.
    """
    if not records:
        raise ValueError("merge_records() needs at least one record")
    if len(records) == 1:
        return records[0]

    merged = merge_models(records)
    _ensure_unique_program_ids(merged)
    return merged
