"""Tests for toonclient.events module."""

from toonclient.events import DeviceOffline, DeviceOnline, EventBus, Initialized, ValueChanged
from toonclient.models import ThermostatStatus


def test_subscriber_receives_events():
    bus = EventBus()
    received = []
    bus.subscribe(received.append)

    bus.emit(ValueChanged("target_temperature", 20.0))

    assert received == [ValueChanged("target_temperature", 20.0)]
    assert received[0].kind == "value_changed"


def test_kind_filter():
    bus = EventBus()
    received = []
    bus.subscribe(received.append, kinds=[DeviceOffline.KIND])

    bus.emit(DeviceOnline())
    bus.emit(DeviceOffline())

    assert received == [DeviceOffline()]


def test_unsubscribe_stops_delivery():
    bus = EventBus()
    received = []
    unsubscribe = bus.subscribe(received.append)

    assert unsubscribe() is True
    bus.emit(DeviceOnline())

    assert received == []
    assert unsubscribe() is False


def test_same_callback_subscribed_once():
    bus = EventBus()
    received = []

    def callback(event):
        received.append(event)

    bus.subscribe(callback)
    bus.subscribe(callback)
    bus.emit(DeviceOnline())

    assert len(received) == 1


def test_failing_subscriber_does_not_block_others(caplog):
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(broken)
    bus.subscribe(received.append)

    bus.emit(Initialized(ThermostatStatus()))

    assert len(received) == 1
    assert "Subscriber failed" in caplog.text


def test_unsubscribe_during_emit():
    bus = EventBus()
    received = []
    unsubscribe = None

    def once(event):
        received.append(event)
        unsubscribe()

    unsubscribe = bus.subscribe(once)
    bus.emit(DeviceOnline())
    bus.emit(DeviceOnline())

    assert received == [DeviceOnline()]


def test_subscribing_again_replaces_kind_filter():
    bus = EventBus()
    received = []
    bus.subscribe(received.append, kinds=[DeviceOnline.KIND])

    bus.subscribe(received.append, kinds=[DeviceOffline.KIND])
    bus.emit(DeviceOnline())
    bus.emit(DeviceOffline())

    assert received == [DeviceOffline()]
