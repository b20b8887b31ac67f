import pytest

from conftest import build_pe_header
from virtscan.framework import constants, interfaces
from virtscan.framework.layers import scanners
from virtscan.framework.layers.scanners import pe


@pytest.fixture
def detector():
    return pe.PEHeaderDetector()


def page_with(header: bytes) -> bytes:
    return header + b"\x00" * (constants.PAGE_SIZE - len(header))


class TestPEHeaderDetector:
    def test_parse(self, detector, pe_header):
        header = detector.try_parse(page_with(pe_header), 0)
        assert header == pe.PEHeader(
            machine=0x8664,
            number_of_sections=0,
            timestamp=0x5F5E1000,
            characteristics=0x22,
            is_dll=False,
            is_64bit=True,
            image_base=0x140000000,
            size_of_image=0x5000,
            size_of_headers=0x400,
            entry_point=0x1000,
            subsystem=2,
        )

    def test_parse_dll(self, detector):
        header = detector.try_parse(page_with(build_pe_header(dll=True)), 0)
        assert header.is_dll
        assert header.characteristics & 0x2000

    def test_parse_at_offset(self, detector, pe_header):
        data = b"\x00" * constants.PAGE_SIZE + page_with(pe_header)
        assert detector.try_parse(data, 0) is None
        assert detector.try_parse(data, constants.PAGE_SIZE).image_base == 0x140000000

    @pytest.mark.parametrize(
        "data",
        [
            page_with(b"MZ"),
            page_with(b"ZM"),
            build_pe_header()[:0x40],
            b"",
        ],
        ids=["no_nt_headers", "no_signature", "truncated", "empty"],
    )
    def test_not_a_header(self, detector, data):
        assert detector.try_parse(data, 0) is None


class CountingDetector(interfaces.layers.HeaderDetectorInterface):
    signature = b"HDR"

    def __init__(self):
        self.offsets = []

    def try_parse(self, data, offset):
        self.offsets.append(offset)
        return data[offset + 3 : offset + 4]


class TestPageScanner:
    def test_detects_page_aligned_headers(self, pe_header):
        data = (
            page_with(pe_header)
            + page_with(b"MZ")
            + page_with(b"\x00" * 0x800 + pe_header)
            + page_with(pe_header)
        )
        results = scanners.PageScanner().detect(0x7FF000000000, data)
        assert [result.virtual_address for result in results] == [
            0x7FF000000000,
            0x7FF000003000,
        ]
        assert all(isinstance(result.header, pe.PEHeader) for result in results)

    def test_signature_prefilter(self):
        detector = CountingDetector()
        data = page_with(b"HDRa") + page_with(b"xxxx") + page_with(b"HDRb")
        results = list(scanners.PageScanner(detector)(data, 0x10000))
        assert detector.offsets == [0, 0x2000]
        assert results == [
            interfaces.layers.DetectionRecord(0x10000, b"a"),
            interfaces.layers.DetectionRecord(0x12000, b"b"),
        ]

    def test_default_detector_finds_pe_headers(self, pe_header):
        results = list(scanners.PageScanner()(page_with(pe_header), 0x10000))
        assert [result.virtual_address for result in results] == [0x10000]
        assert results[0].header.image_base == 0x140000000
