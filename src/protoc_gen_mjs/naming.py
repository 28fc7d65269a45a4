from __future__ import annotations


def to_lower_camel(name: str) -> str:
    """Convert snake_case to lowerCamelCase.

    The first segment is kept as-is; empty segments (leading, trailing or
    doubled underscores) are skipped: entity_id -> entityId.
    """
    parts = name.split("_")
    result = []
    for i, part in enumerate(parts):
        if not part:
            continue
        if i == 0:
            result.append(part)
        else:
            result.append(part[0].upper() + part[1:])
    return "".join(result)


def to_upper_camel(name: str) -> str:
    """Convert snake_case to UpperCamelCase: entity_id -> EntityId."""
    return "".join(p[0].upper() + p[1:] for p in name.split("_") if p)
