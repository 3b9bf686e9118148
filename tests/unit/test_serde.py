"""Unit tests for JSON conversion of job outputs and workflow inputs."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

import pytest
from pydantic import BaseModel

from stepflow.core.codec.serde import SerializationError, dumps_json, loads_json, to_jsonable


class AreaModel(BaseModel):
    area: float
    unit: str = 'm2'


@dataclass
class RegionMatch:
    name: str
    measured: AreaModel
    at: dt.date


@pytest.mark.unit
class TestToJsonable:
    def test_primitives_pass_through(self) -> None:
        for value in (None, True, 3, 2.5, 'x'):
            assert to_jsonable(value) == value

    def test_datetimes_become_iso_strings(self) -> None:
        value = dt.datetime(2025, 6, 15, 10, 30, 45, tzinfo=dt.timezone.utc)
        assert to_jsonable(value) == '2025-06-15T10:30:45+00:00'
        assert to_jsonable(dt.date(2025, 1, 2)) == '2025-01-02'
        assert to_jsonable(dt.time(8, 5)) == '08:05:00'

    def test_pydantic_model(self) -> None:
        assert to_jsonable(AreaModel(area=1.5)) == {'area': 1.5, 'unit': 'm2'}

    def test_nested_dataclass(self) -> None:
        match = RegionMatch(name='France', measured=AreaModel(area=2.0), at=dt.date(2025, 1, 1))
        assert to_jsonable(match) == {
            'name': 'France',
            'measured': {'area': 2.0, 'unit': 'm2'},
            'at': '2025-01-01',
        }

    def test_mapping_keys_become_strings(self) -> None:
        assert to_jsonable({1: (1, 2)}) == {'1': [1, 2]}

    def test_sets_become_lists(self) -> None:
        assert to_jsonable({'a'}) == ['a']

    def test_unsupported_type(self) -> None:
        with pytest.raises(SerializationError, match='object'):
            to_jsonable(object())


@pytest.mark.unit
class TestJsonStrings:
    def test_compact_output(self) -> None:
        assert dumps_json({'workflowId': 'wf', 'tasks': [1, 2]}) == (
            '{"workflowId":"wf","tasks":[1,2]}'
        )

    def test_non_ascii_kept(self) -> None:
        assert dumps_json('Köln') == '"Köln"'

    def test_nan_rejected(self) -> None:
        with pytest.raises(SerializationError):
            dumps_json(float('nan'))

    def test_loads(self) -> None:
        assert loads_json('{"a":[1,null]}') == {'a': [1, None]}

    @pytest.mark.parametrize('empty', [None, ''])
    def test_loads_empty(self, empty: str | None) -> None:
        assert loads_json(empty) is None
