# util.py: naming and record helpers
from typing import Any, Dict, Hashable, Iterable, List


def singularize(name: str) -> str:
    """
    not the smartest way to make a value singular: strip the trailing character of a plural name
    resource types can declare an explicit singular name when this doesn't work out
    """
    if name.endswith("s"):
        return name[:-1]
    return name


def unique(values: Iterable[Hashable]) -> List[Any]:
    """
    :return: the values without duplicates, in the order they were first seen
    """
    return list(dict.fromkeys(values))


def records_equal(record: Dict[str, Any], other: Dict[str, Any]) -> bool:
    """
    Two records are equal when they have the same field set and identical values for every field
    """
    if len(record) != len(other):
        return False
    for key, value in other.items():
        if key not in record or record[key] != value:
            return False
    return True
