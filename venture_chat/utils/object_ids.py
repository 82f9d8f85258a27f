from typing import Iterable, List, Optional

from bson import ObjectId


def parse_object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def parse_object_ids(values: Iterable) -> List[ObjectId]:
    # malformed ids are dropped, they cannot match any stored document
    parsed = []
    seen = set()
    for value in values:
        oid = parse_object_id(value)
        if oid is not None and oid not in seen:
            seen.add(oid)
            parsed.append(oid)
    return parsed
