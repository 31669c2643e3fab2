import yaml
from pathlib import Path
import logging
import collections.abc
from typing import Union

logger = logging.getLogger(__name__)


def deep_merge(a, b):
    """
    Recursively merge dictionary `b` into dictionary `a`.

    If both `a` and `b` contain a key with a dictionary as its value,
    those dictionaries are merged recursively. Otherwise, the value from `b`
    overrides the value in `a`.

    Args:
        a (dict): The base dictionary.
        b (dict): The dictionary whose values should be merged into `a`.

    Returns:
        dict: A new dictionary containing the merged keys and values.
    """
    result = a.copy()
    for k, v in b.items():
        if (k in result and isinstance(result[k], dict)
                and isinstance(v, collections.abc.Mapping)):
            result[k] = deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def drop_none(values: dict) -> dict:
    """Return a copy of `values` without keys whose value is None, recursively."""
    cleaned = {}
    for k, v in values.items():
        if isinstance(v, dict):
            v = drop_none(v)
        if v is None:
            continue
        cleaned[k] = v
    return cleaned


def load_yaml_file(filepath: str, allow_list: bool = False) -> Union[dict, list]:
    """
    Safely load a YAML file and return its contents.

    Args:
        filepath (str): Path to the YAML file.
        allow_list (bool): Accept a top-level sequence as well as a mapping.

    Returns:
        dict | list: Parsed contents of the YAML file.

    Raises:
        FileNotFoundError: If the specified file does not exist.
        ValueError: If the file cannot be parsed or has the wrong top-level type.
    """
    path = Path(filepath).expanduser().resolve()

    logger.info(f"Reading yaml file at {path}")

    if not path.is_file():
        raise FileNotFoundError(f"YAML file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse YAML file '{path}': {e}")

    if data is None:
        data = [] if allow_list else {}

    expected = (dict, list) if allow_list else dict
    if not isinstance(data, expected):
        raise ValueError(f"YAML file '{path}' does not contain a valid {'mapping or list' if allow_list else 'dictionary'}.")

    logger.info(f"YAML file '{path}' loaded successfully.")
    return data
