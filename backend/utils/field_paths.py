from typing import Any, Dict


def split_path(path: str) -> list:
    parts = path.split(".")
    if not all(parts):
        raise ValueError(f"Invalid field path: {path!r}")
    return parts


def apply_updates(data: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply {"a.b.c": value} updates to a nested dict in place, Firestore style:
    intermediate maps are created as needed and sibling fields are left alone.
    A non-dict value sitting on an intermediate segment is replaced by a map.
    """
    for path, value in updates.items():
        parts = split_path(path)
        node = data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
    return data
