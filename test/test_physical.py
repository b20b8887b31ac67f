import builtins
import concurrent.futures
import time

import pytest

from virtscan.framework import contexts, exceptions
from virtscan.framework.layers import physical


@pytest.fixture
def context():
    return contexts.Context()


class TestBufferDataLayer:
    def test_read(self, context):
        layer = physical.BufferDataLayer(context, "p", "physical", b"0123456789")
        assert layer.minimum_address == 0
        assert layer.maximum_address == 9
        assert layer.read(2, 3) == b"234"
        assert layer.is_valid(9)
        assert not layer.is_valid(9, 2)
        assert not layer.is_valid(0, 0)

    def test_read_outside_buffer(self, context):
        layer = physical.BufferDataLayer(context, "p", "physical", b"0123456789")
        with pytest.raises(exceptions.InvalidAddressException) as excinfo:
            layer.read(8, 4)
        assert excinfo.value.invalid_address == 10
        assert excinfo.value.layer_name == "physical"

    def test_read_beyond_buffer(self, context):
        layer = physical.BufferDataLayer(context, "p", "physical", b"0123456789")
        with pytest.raises(exceptions.InvalidAddressException) as excinfo:
            layer.read(20, 1)
        assert excinfo.value.invalid_address == 20


class TestFileLayer:
    @pytest.fixture
    def dump(self, tmp_path):
        path = tmp_path / "memory.raw"
        path.write_bytes(bytes(range(256)) * 16)
        return str(path)

    @pytest.fixture
    def opened(self, monkeypatch):
        """Records every file the physical module opens, slowly enough that
        racing readers would each open their own handle."""
        handles = []

        def slow_open(*args, **kwargs):
            time.sleep(0.01)
            handle = builtins.open(*args, **kwargs)
            handles.append(handle)
            return handle

        monkeypatch.setattr(physical, "open", slow_open, raising=False)
        return handles

    def test_read(self, context, dump):
        context.config["file.location"] = dump
        layer = physical.FileLayer(context, "file", "physical")
        assert layer.location == dump
        assert layer.maximum_address == 0xFFF
        assert layer.read(0x101, 3) == b"\x01\x02\x03"
        layer.destroy()

    def test_read_past_end(self, context, dump):
        context.config["file.location"] = dump
        layer = physical.FileLayer(context, "file", "physical")
        with pytest.raises(exceptions.InvalidAddressException) as excinfo:
            layer.read(0xFFE, 4)
        assert excinfo.value.invalid_address == 0x1000
        layer.destroy()

    def test_missing_location(self, context):
        with pytest.raises(exceptions.UnsatisfiedException):
            physical.FileLayer(context, "file", "physical")

    def test_concurrent_first_reads_share_one_handle(self, context, dump, opened):
        context.config["file.location"] = dump
        layer = physical.FileLayer(context, "file", "physical")
        offsets = list(range(0, 0x1000, 0x80))
        with concurrent.futures.ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(lambda offset: layer.read(offset, 2), offsets))
        assert results == [bytes([offset % 256, offset % 256 + 1]) for offset in offsets]
        assert len(opened) == 1
        layer.destroy()
        assert opened[0].closed

    def test_read_after_destroy_reopens(self, context, dump, opened):
        context.config["file.location"] = dump
        layer = physical.FileLayer(context, "file", "physical")
        assert layer.read(0x10, 2) == b"\x10\x11"
        layer.destroy()
        assert layer.read(0x20, 2) == b"\x20\x21"
        assert len(opened) == 2
        assert opened[0].closed
        assert not opened[1].closed
        layer.destroy()


class TestLayerContainer:
    def test_duplicate_names(self, context):
        context.add_layer(physical.BufferDataLayer(context, "p", "physical", b"ab"))
        with pytest.raises(exceptions.LayerException):
            context.add_layer(
                physical.BufferDataLayer(context, "p", "physical", b"cd")
            )

    def test_read_and_delete(self, context):
        context.add_layer(physical.BufferDataLayer(context, "p", "physical", b"ab"))
        assert context.layers.read("physical", 1, 1) == b"b"
        assert list(context.layers) == ["physical"]
        context.layers.del_layer("physical")
        assert "physical" not in context.layers
        assert len(context.layers) == 0

    def test_delete_destroys_layer(self, context, tmp_path):
        path = tmp_path / "memory.raw"
        path.write_bytes(b"\x00" * 16)
        context.config["file.location"] = str(path)
        layer = physical.FileLayer(context, "file", "physical")
        context.add_layer(layer)
        assert context.layers.read("physical", 0, 4) == b"\x00" * 4
        context.layers.del_layer("physical")
        assert layer._handle is None
