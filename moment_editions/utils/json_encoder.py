"""Custom JSON encoding utilities"""
import json
from datetime import datetime
from decimal import Decimal
from enum import Enum

class EditionJSONEncoder(json.JSONEncoder):
    """JSON encoder handling datetimes, enums and decimals"""
    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, Decimal):
            return str(obj)
        return super().default(obj)

def json_dumps(obj, **kwargs) -> str:
    """Helper function to dump JSON with datetime handling"""
    return json.dumps(obj, cls=EditionJSONEncoder, **kwargs)
