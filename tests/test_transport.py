"""Tests for the exact-count reader and the pyserial transport."""

import time
from types import SimpleNamespace

import pytest
import serial

from winc_flasher.config import SerialConfig
from winc_flasher.errors import TransportClosedError, TransportError, TransportTimeoutError
from winc_flasher.protocol import transport as transport_mod
from winc_flasher.protocol.transport import ReliableReader, SerialTransport


class TestReliableReader:
    def test_single_read_satisfies_request(self, scripted):
        reader = ReliableReader(scripted([b"OK"]))
        assert reader.fill(2) == b"OK"

    def test_partial_reads_are_accumulated(self, scripted):
        t = scripted([b"\x01", b"\x02\x03", b"\x04", b"\x05\x06\x07"])
        assert ReliableReader(t).fill(7) == bytes(range(1, 8))

    def test_leftover_stays_in_transport(self, make_programmer):
        programmer = make_programmer(max_read=3)
        programmer.rx += b"abcdefgh"
        reader = ReliableReader(programmer)
        assert reader.fill(5) == b"abcde"
        assert reader.fill(3) == b"fgh"

    def test_zero_count_reads_nothing(self, scripted):
        t = scripted([])
        assert ReliableReader(t).fill(0) == b""

    def test_close_before_any_byte_raises(self, scripted):
        with pytest.raises(TransportClosedError) as excinfo:
            ReliableReader(scripted([])).fill(2)
        assert excinfo.value.expected == 2
        assert excinfo.value.received == 0

    def test_close_mid_ack_is_not_a_short_result(self, scripted):
        reader = ReliableReader(scripted([b"O"]))
        with pytest.raises(TransportClosedError) as excinfo:
            reader.fill(2)
        assert excinfo.value.received == 1

    def test_deadline_expiry_raises_timeout(self, scripted, monkeypatch):
        clock = iter([0.0, 0.5, 2.0])
        monkeypatch.setattr(transport_mod, "time", SimpleNamespace(monotonic=lambda: next(clock)))
        t = scripted([b"\x00", b"\x00", b"\x00"])
        with pytest.raises(TransportTimeoutError):
            ReliableReader(t, timeout=1.0).fill(3)
        assert t.timeouts == [0.5]

    def test_remaining_time_is_passed_to_each_read(self, scripted, monkeypatch):
        clock = iter([10.0, 10.0, 10.25, 10.75])
        monkeypatch.setattr(transport_mod, "time", SimpleNamespace(monotonic=lambda: next(clock)))
        t = scripted([b"\x01", b"\x02", b"\x03"])
        assert ReliableReader(t, timeout=1.0).fill(3) == b"\x01\x02\x03"
        assert t.timeouts == [1.0, 0.75, 0.25]

    def test_deadline_not_checked_once_complete(self, scripted, monkeypatch):
        clock = iter([0.0, 0.5])
        monkeypatch.setattr(transport_mod, "time", SimpleNamespace(monotonic=lambda: next(clock)))
        reader = ReliableReader(scripted([b"OK"]), timeout=1.0)
        assert reader.fill(2) == b"OK"

    def test_no_deadline_reads_without_timeout(self, scripted):
        t = scripted([b"O", b"K"])
        assert ReliableReader(t).fill(2) == b"OK"
        assert t.timeouts == [None, None]

    def test_stalled_device_is_bounded_by_deadline(self):
        class StallingTransport:
            """Never delivers data; honours the per-read timeout like a serial port."""

            def __init__(self, stall):
                self.stall = stall

            def read(self, size, timeout=None):
                time.sleep(self.stall if timeout is None else min(self.stall, timeout))
                raise TransportTimeoutError("no data")

            def write(self, data):
                return len(data)

            def close(self):
                pass

        started = time.monotonic()
        with pytest.raises(TransportTimeoutError):
            ReliableReader(StallingTransport(1.5), timeout=0.1).fill(2)
        assert time.monotonic() - started < 1.0

    def test_timeout_is_a_transport_error(self):
        assert issubclass(TransportTimeoutError, TransportError)
        assert issubclass(TransportClosedError, TransportError)


class FakeSerial:
    """Minimal serial.Serial replacement."""

    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.is_open = True
        self.incoming = bytearray()
        self.outgoing = bytearray()
        self.max_write = None
        self.raise_on_read = None
        self.timeout = kwargs.get("timeout")
        self.read_timeouts = []
        FakeSerial.instances.append(self)

    @property
    def in_waiting(self):
        return len(self.incoming)

    def read(self, size=1):
        self.read_timeouts.append(self.timeout)
        if self.raise_on_read:
            raise self.raise_on_read
        out = bytes(self.incoming[:size])
        del self.incoming[:size]
        return out

    def write(self, data):
        data = bytes(data)
        if self.max_write:
            data = data[: self.max_write]
        self.outgoing += data
        return len(data)

    def reset_input_buffer(self):
        pass

    def reset_output_buffer(self):
        pass

    def close(self):
        self.is_open = False


@pytest.fixture
def fake_serial(monkeypatch):
    FakeSerial.instances = []
    monkeypatch.setattr(transport_mod.serial, "Serial", FakeSerial)
    return FakeSerial


class TestSerialTransport:
    def test_open_configures_8n1(self, fake_serial):
        t = SerialTransport("/dev/ttyACM0", SerialConfig(baudrate=57600, read_timeout=2.0))
        t.open()
        kwargs = fake_serial.instances[0].kwargs
        assert kwargs["port"] == "/dev/ttyACM0"
        assert kwargs["baudrate"] == 57600
        assert kwargs["bytesize"] == serial.EIGHTBITS
        assert kwargs["parity"] == serial.PARITY_NONE
        assert kwargs["stopbits"] == serial.STOPBITS_ONE
        assert kwargs["timeout"] == 2.0
        assert t.is_open

    def test_open_failure_is_wrapped(self, monkeypatch):
        def boom(**kwargs):
            raise serial.SerialException("no such device")

        monkeypatch.setattr(transport_mod.serial, "Serial", boom)
        with pytest.raises(TransportError, match="Cannot open port"):
            SerialTransport("/dev/missing").open()

    def test_read_returns_buffered_bytes_up_to_size(self, fake_serial):
        with SerialTransport("COM3") as t:
            fake_serial.instances[0].incoming += b"v10000xyz"
            assert t.read(6) == b"v10000"
            assert t.read(100) == b"xyz"

    def test_read_after_close_reports_closed(self, fake_serial):
        t = SerialTransport("COM3")
        t.open()
        t.close()
        assert t.read(2) == b""

    def test_empty_read_with_timeout_raises(self, fake_serial):
        with SerialTransport("COM3", SerialConfig(read_timeout=0.5)) as t:
            with pytest.raises(TransportTimeoutError):
                t.read(2)

    def test_empty_read_without_timeout_reads_as_closed(self, fake_serial):
        with SerialTransport("COM3") as t:
            assert t.read(2) == b""

    def test_read_error_is_wrapped(self, fake_serial):
        with SerialTransport("COM3") as t:
            fake_serial.instances[0].raise_on_read = serial.SerialException("device gone")
            with pytest.raises(TransportError, match="Read error"):
                t.read(2)

    def test_write_loops_over_partial_writes(self, fake_serial):
        with SerialTransport("COM3") as t:
            fake_serial.instances[0].max_write = 4
            assert t.write(b"0123456789") == 10
            assert bytes(fake_serial.instances[0].outgoing) == b"0123456789"

    def test_write_requires_open_port(self):
        with pytest.raises(TransportError, match="not open"):
            SerialTransport("COM3").write(b"x")

    def test_close_is_idempotent(self, fake_serial):
        t = SerialTransport("COM3")
        t.open()
        t.close()
        t.close()
        assert not t.is_open

    def test_per_call_timeout_applies_only_to_that_read(self, fake_serial):
        with SerialTransport("COM3", SerialConfig(read_timeout=5.0)) as t:
            ser = fake_serial.instances[0]
            with pytest.raises(TransportTimeoutError, match="0.25"):
                t.read(2, timeout=0.25)
            assert ser.read_timeouts == [0.25]
            assert ser.timeout == 5.0

    def test_per_call_timeout_without_configured_timeout(self, fake_serial):
        with SerialTransport("COM3") as t:
            ser = fake_serial.instances[0]
            ser.incoming += b"OK"
            assert t.read(2, timeout=1.5) == b"OK"
            assert ser.read_timeouts[0] == 1.5
            assert ser.timeout is None
            with pytest.raises(TransportTimeoutError):
                t.read(2, timeout=0.1)
