"""
Unit tests for the remote payload smart filter
"""

import pytest

from prescription_reminder.smart_filter import SmartFilter, classify_segment, split_into_segments


@pytest.mark.parametrize("segment, kind", [
    ("Tái khám ngày 20/01/2025", "appointment"),
    ("Ngày 20/01/2025 khám lại", "appointment"),
    ("1. Paracetamol 500mg", "medication"),
    ("Uống 2 viên sáng", "medication"),
    ("Lời dặn: nghỉ ngơi nhiều", "instruction"),
    ("Chẩn đoán: Viêm họng cấp", "diagnosis"),
    ("Họ tên: Nguyễn Văn An", "patient"),
    ("Phòng khám đa khoa", "other"),
    ("----------", "skip"),
    ("ab", "skip"),
])
def test_classify_segment(segment, kind):
    """Test segment classification"""
    assert classify_segment(segment) == kind


def test_split_collapsed_list():
    """Test one line with several list markers becomes several segments"""
    segments = split_into_segments("ĐƠN THUỐC 1. Paracetamol 500mg 2. Ibuprofen 400mg\nTái khám")
    assert segments == ["ĐƠN THUỐC", "1. Paracetamol 500mg", "2. Ibuprofen 400mg", "Tái khám"]


def test_process_builds_sections():
    """Test sections appear in a fixed order and noise is dropped"""
    text = "\n".join([
        "Phòng khám đa khoa",
        "Họ tên: Nguyễn Văn An",
        "Chẩn đoán: Viêm họng cấp",
        "1. Paracetamol 500mg sáng tối",
        "----------",
        "Tái khám ngày 20/01/2025",
        "Lời dặn: nghỉ ngơi nhiều",
    ])
    result = SmartFilter().process(text)

    assert result.text.index("=== THÔNG TIN BỆNH NHÂN ===") < result.text.index("=== CHẨN ĐOÁN ===")
    assert result.text.index("=== CHẨN ĐOÁN ===") < result.text.index("=== THUỐC (Top 15) ===")
    assert result.text.index("=== THUỐC (Top 15) ===") < result.text.index("=== LỊCH KHÁM ===")
    assert result.text.index("=== LỊCH KHÁM ===") < result.text.index("=== LỜI DẶN ===")
    assert "Phòng khám đa khoa" not in result.text
    assert result.stats["skipped"] == 1
    assert result.stats["other"] == 1
    assert result.stats["medication"] == 1


def test_medication_list_is_capped():
    """Test only the first medications are kept with a count of the rest"""
    text = "\n".join(f"{i}. Medicine{i} {i}0mg" for i in range(1, 21))
    result = SmartFilter({"max_medications": 15}).process(text)

    assert "15. Medicine15" in result.text
    assert "16. Medicine16" not in result.text
    assert "... và 5 loại thuốc khác" in result.text


def test_long_segments_truncated():
    """Test very long segments are cut"""
    result = SmartFilter({"max_segment_length": 20}).process("Paracetamol 500mg " + "x" * 100)
    assert result.classified["medication"][0] == "Paracetamol 500mg xx..."


def test_reduction_rate():
    """Test reduction rate against the original length"""
    result = SmartFilter().process("Phòng khám đa khoa\n" * 10 + "Paracetamol 500mg")
    assert result.reduction_rate > 50


def test_empty_text():
    """Test empty input"""
    result = SmartFilter().process("")
    assert result.text == ""
    assert result.reduction_rate == 0
