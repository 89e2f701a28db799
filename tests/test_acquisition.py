import threading

import pytest
from PIL import Image

from capture.acquisition import MediaAcquisition
from capture.errors import (
    AcquisitionError, DeviceNotFound, PermissionDenied, UnsupportedEnvironment, classify_error
)
from capture.tracks import ENDED, LIVE, MediaStream, MediaTrack, ScreenTrack
from conftest import FakeDevices


@pytest.mark.parametrize("raised, expected, message", [
    (PermissionError("denied"), PermissionDenied,
     "Camera/Screen access denied. Please check site permissions."),
    (FileNotFoundError("/dev/video0"), DeviceNotFound,
     "No camera found. Please connect a webcam."),
    (RuntimeError("device busy"), UnsupportedEnvironment,
     "Proctoring failed to start. Ensure no other app is using your camera."),
])
def test_classify_error(raised, expected, message):
    error = classify_error(raised)

    assert isinstance(error, expected)
    assert error.user_message == message


def test_classify_error_keeps_classified_errors():
    error = DeviceNotFound("gone")
    assert classify_error(error) is error


def test_acquire_requests_camera_then_screen():
    devices = FakeDevices()
    acquisition = MediaAcquisition(devices, width=640, height=480)

    session = acquisition.acquire()

    assert devices.camera_requests == [(640, 480, "user")]
    assert session.camera_track is devices.camera_tracks[0]
    assert session.screen_track is devices.screen_tracks[0]
    assert session.live_track_count() == 2
    assert acquisition.is_active


def test_acquire_is_reused_while_active():
    devices = FakeDevices()
    acquisition = MediaAcquisition(devices)

    first = acquisition.acquire()
    second = acquisition.acquire()

    assert first is second
    assert len(devices.camera_requests) == 1


@pytest.mark.parametrize("raised, expected", [
    (PermissionError("denied"), PermissionDenied),
    (OSError("no display"), UnsupportedEnvironment),
])
def test_screen_failure_releases_camera(raised, expected):
    devices = FakeDevices(screen_error=raised)
    acquisition = MediaAcquisition(devices)

    with pytest.raises(expected):
        acquisition.acquire()

    assert devices.camera_tracks[0].ready_state == ENDED
    assert not acquisition.is_active


def test_camera_failure_is_classified():
    acquisition = MediaAcquisition(FakeDevices(camera_error=FileNotFoundError("none")))

    with pytest.raises(AcquisitionError) as info:
        acquisition.acquire()

    assert info.value.reason == "device_not_found"


def test_release_is_idempotent():
    devices = FakeDevices()
    acquisition = MediaAcquisition(devices)
    acquisition.acquire()

    assert acquisition.release() == 2
    assert acquisition.release() == 0
    assert devices.live_tracks() == 0
    assert devices.camera_tracks[0].capture.released


def test_release_without_acquire():
    assert MediaAcquisition(FakeDevices()).release() == 0


def test_screen_end_from_host_notifies_once():
    devices = FakeDevices()
    acquisition = MediaAcquisition(devices)
    calls = []
    acquisition.acquire(on_screen_ended=lambda: calls.append(1))

    devices.screen_tracks[0].end_sharing()
    devices.screen_tracks[0].end_sharing()

    assert calls == [1]


def test_local_release_does_not_notify_screen_end():
    devices = FakeDevices()
    acquisition = MediaAcquisition(devices)
    calls = []
    acquisition.acquire(on_screen_ended=lambda: calls.append(1))

    acquisition.release()
    devices.screen_tracks[0].end_sharing()

    assert calls == []


def test_track_stop_skips_listeners():
    track = MediaTrack("test")
    calls = []
    track.add_ended_listener(calls.append)

    assert track.stop() is True
    assert track.stop() is False
    assert track.ready_state == ENDED
    assert calls == []


def test_failing_listener_does_not_block_others():
    track = MediaTrack("test")
    calls = []

    def broken(t):
        raise RuntimeError("boom")

    track.add_ended_listener(broken)
    track.add_ended_listener(calls.append)

    assert track._end_from_source() is True
    assert calls == [track]


def test_screen_grab_converts_to_bgr():
    track = ScreenTrack(lambda: Image.new("RGB", (4, 2), (255, 0, 0)))

    frame = track.grab_frame()

    assert frame.shape == (2, 4, 3)
    assert list(frame[0, 0]) == [0, 0, 255]
    assert track.ready_state == LIVE


def test_screen_grab_failure_ends_track():
    def grabber():
        raise OSError("display closed")

    track = ScreenTrack(grabber)
    ended = []
    track.add_ended_listener(ended.append)

    assert track.grab_frame() is None
    assert ended == [track]
    assert not track.is_live


def test_media_stream_counts():
    tracks = [MediaTrack("a"), MediaTrack("b")]
    stream = MediaStream(tracks)
    tracks[0].stop()

    assert stream.active
    assert stream.live_track_count() == 1
    assert stream.stop() == 1
    assert not stream.active


def test_concurrent_acquire_keeps_one_session():
    devices = FakeDevices()
    hold = devices.hold_camera = threading.Event()
    acquisition = MediaAcquisition(devices)
    results = []

    slow = threading.Thread(target=lambda: results.append(acquisition.acquire()))
    slow.start()
    assert devices.camera_entered.wait(timeout=2)

    installed = acquisition.acquire()
    hold.set()
    slow.join(timeout=2)

    assert results == [installed]
    assert acquisition.session is installed
    assert len(devices.camera_tracks) == 2
    assert devices.live_tracks() == 2

    acquisition.release()
    assert devices.live_tracks() == 0
