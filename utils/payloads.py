"""
JSON payload helpers shared by the blueprints and collaborator clients.
Bridges camelCase JSON bodies to WTForms form data and back.
"""

import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from werkzeug.datastructures import MultiDict
from timezone_utils import to_local_naive

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')

FORM_SEPARATOR = '-'


def camel_to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub('_', name).lower()


def snake_to_camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def flatten_payload(data: Optional[Dict[str, Any]], prefix: str = '',
                    into: Optional[MultiDict] = None) -> MultiDict:
    """
    Flatten a JSON object into form data.

    Nested objects become ``parent-child`` keys and lists become repeated
    keys, matching how WTForms names FormField and SelectMultipleField data.
    Null values are dropped so they read as absent.
    """
    formdata = into if into is not None else MultiDict()
    if not isinstance(data, dict):
        return formdata

    for key, value in data.items():
        name = f"{prefix}{camel_to_snake(key)}"
        if value is None:
            continue
        if isinstance(value, dict):
            flatten_payload(value, prefix=f"{name}{FORM_SEPARATOR}", into=formdata)
        elif isinstance(value, (list, tuple)):
            for item in value:
                if item is not None:
                    formdata.add(name, _scalar(item))
        else:
            formdata.add(name, _scalar(value))
    return formdata


def flatten_form_errors(errors: Dict[str, Any], prefix: str = '') -> List[Dict[str, str]]:
    """Turn nested WTForms errors into ``[{field, message}]`` with camelCase dotted paths"""
    flat = []
    for name, value in errors.items():
        path = f"{prefix}{snake_to_camel(name)}"
        if isinstance(value, dict):
            flat.extend(flatten_form_errors(value, prefix=f"{path}."))
        else:
            for message in value:
                flat.append({'field': path, 'message': str(message)})
    return flat


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into naive local time.

    Raises:
        ValueError: if the value is not a recognisable timestamp
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return to_local_naive(value)
    if not isinstance(value, str):
        raise ValueError(f"Not a valid datetime value: {value!r}")

    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    return to_local_naive(datetime.fromisoformat(text))


def get_pagination_args(args, default_limit: int = 20, max_limit: int = 100) -> Tuple[int, int]:
    page = args.get('page', 1, type=int) or 1
    limit = args.get('limit', default_limit, type=int) or default_limit
    return max(page, 1), max(min(limit, max_limit), 1)


def pagination_meta(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        'current': page,
        'pages': math.ceil(total / limit) if limit else 0,
        'total': total,
    }
