import pytest

from scheduler_extender.utils.resource_parser import parse_resource_value, sum_resource_lists

from helpers import GPU


@pytest.mark.parametrize("value, expected", [
    ("200m", 200),
    ("2", 2000),
    ("0.5", 500),
    (1, 1000),
])
def test_cpu_values_are_millicores(value, expected):
    assert parse_resource_value(value, "cpu") == expected


@pytest.mark.parametrize("value, expected", [
    ("256Mi", 256),
    ("1Gi", 1024),
    ("1G", 1000),
    ("2048Ki", 2),
    ("1048576", 1),
])
def test_memory_values_are_megabytes(value, expected):
    assert parse_resource_value(value, "memory") == expected


def test_extended_resource_is_integer_count():
    assert parse_resource_value("2", GPU) == 2
    assert parse_resource_value(" 3 ", GPU) == 3


def test_invalid_extended_resource_counts_as_zero():
    assert parse_resource_value("half", GPU) == 0


@pytest.mark.parametrize("value", [None, ""])
def test_missing_value_is_zero(value):
    assert parse_resource_value(value, GPU) == 0
    assert parse_resource_value(value, "cpu") == 0


def test_sum_resource_lists_skips_empty_lists():
    lists = [{GPU: "1"}, None, {}, {GPU: "2", "cpu": "1"}]
    assert sum_resource_lists(lists, GPU) == 3
    assert sum_resource_lists(lists, "cpu") == 1000
