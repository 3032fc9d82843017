"""
Conversion between engine state and the values kept in storage.

Leaky bucket records are JSON objects ``{"drops": .., "time": .., "data": ..}``.
Window counters are stored as raw integers.
"""
from dataclasses import dataclass
from typing import Any, Optional
import json
import math

from ..errors import CorruptRecord
from ..storage.base import MISSING


@dataclass
class BucketState:
    drops: float
    time: float
    data: Any = None


def _number(record: dict, field: str) -> float:
    if field not in record:
        raise CorruptRecord(f"Bucket record has no '{field}' field")

    value = record[field]
    # bool is an int subclass but never a valid amount
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CorruptRecord(f"Bucket field '{field}' is not a number: {value!r}")
    if not math.isfinite(value):
        raise CorruptRecord(f"Bucket field '{field}' is not finite: {value!r}")
    return float(value)


def encode_bucket(state: BucketState) -> str:
    record = {'drops': state.drops, 'time': state.time}
    if state.data is not None:
        record['data'] = state.data
    return json.dumps(record)


def decode_bucket(raw: Any) -> Optional[BucketState]:
    """
    Parse a stored bucket record.

    Returns None when nothing is stored and raises CorruptRecord when
    something is stored but cannot be used.
    """
    if raw is MISSING or raw is None:
        return None

    if isinstance(raw, bytes):
        raw = raw.decode('utf-8')

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptRecord(f"Bucket record is not valid JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise CorruptRecord(f"Bucket record is not an object: {type(raw).__name__}")

    drops = _number(raw, 'drops')
    if drops < 0:
        raise CorruptRecord(f"Bucket field 'drops' is negative: {drops}")

    return BucketState(drops=drops, time=_number(raw, 'time'), data=raw.get('data'))


def decode_count(raw: Any) -> int:
    """Parse a stored window counter, 0 when nothing is stored"""
    if raw is MISSING or raw is None:
        return 0

    if isinstance(raw, bytes):
        raw = raw.decode('utf-8')

    if isinstance(raw, bool):
        raise CorruptRecord(f"Counter value is not an integer: {raw!r}")
    try:
        count = int(raw)
    except (TypeError, ValueError) as exc:
        raise CorruptRecord(f"Counter value is not an integer: {raw!r}") from exc

    if count < 0:
        raise CorruptRecord(f"Counter value is negative: {count}")
    return count


def key_part(value: str) -> str:
    """Escape ":" (and the escape character) so joined key parts stay unambiguous"""
    return str(value).replace('%', '%25').replace(':', '%3A')
