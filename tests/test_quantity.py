"""Tests for resource quantity parsing."""

import pytest

from quantity import parse_cpu_cores, parse_memory_gb, parse_storage_gb, parse_int_claim


class TestParseCpuCores:
    @pytest.mark.parametrize("value,expected", [
        ("4", 4),
        ("16", 16),
        (" 8 ", 8),
        ("4000m", 4),
        ("1500m", 1),
        ("2k", 2000),
        ("2.9", 2),
    ])
    def test_valid_values(self, value, expected):
        assert parse_cpu_cores(value) == expected

    @pytest.mark.parametrize("value", ["", "abc", "-4", "four cores", None, "4Xi"])
    def test_malformed_returns_zero(self, value):
        assert parse_cpu_cores(value) == 0


class TestParseMemoryGb:
    @pytest.mark.parametrize("value,expected", [
        ("16Gi", 16),
        ("16gi", 16),
        ("16GiB", 16),
        ("16384Mi", 16),
        ("16777216Ki", 16),
        ("1Ti", 1024),
        ("64G", 59),
        ("32GB", 29),
        ("1536Mi", 1),
    ])
    def test_units(self, value, expected):
        assert parse_memory_gb(value) == expected

    def test_unitless_is_invalid(self):
        assert parse_memory_gb("17179869184") == 0

    def test_below_one_gb_rounds_to_zero(self):
        assert parse_memory_gb("512Mi") == 0

    @pytest.mark.parametrize("value", ["", "Gi", "lots", "-16Gi", None])
    def test_malformed_returns_zero(self, value):
        assert parse_memory_gb(value) == 0


class TestParseStorageGb:
    def test_binary_suffix(self):
        assert parse_storage_gb("100Gi") == 100

    def test_tebibytes(self):
        assert parse_storage_gb("2Ti") == 2048

    def test_unitless_is_invalid(self):
        assert parse_storage_gb("100") == 0


class TestParseIntClaim:
    def test_integer(self):
        assert parse_int_claim("12") == 12

    def test_garbage(self):
        assert parse_int_claim("twelve") == 0
