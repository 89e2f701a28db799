import threading
import time

import pytest

from capture.errors import DeviceNotFound, PermissionDenied
from integrity_engine.models import MonitorState, ViolationKind
from conftest import FakeDevices, people


def notice_messages(session):
    return [notice.message for notice in session.notices.active()]


def wait_for(predicate, timeout=3):
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.01)
    return predicate()


def display_gone():
    raise OSError("display went away")


def test_start_acquires_both_tracks_and_arms(make_session, devices):
    session = make_session()

    assert session.start() is True
    assert session.state is MonitorState.ARMED
    assert session.live_track_count() == 2
    assert devices.camera_requests == [(1280, 720, "user")]
    assert "Integrity Systems Synchronized!" in notice_messages(session)


def test_first_tick_enters_monitoring(make_session):
    session = make_session()
    session.start()

    assert session.tick() == []
    assert session.state is MonitorState.MONITORING


def test_two_people_for_ten_ticks_raise_at_least_one_and_at_most_ten(make_session, fake_model, clock):
    fake_model.detections = people(2)
    session = make_session()
    session.start()

    events = []
    for _ in range(10):
        events.extend(session.tick())
        clock.advance(0.1)

    assert 1 <= len(events) <= 10
    assert len(events) == 1
    assert all(e.kind is ViolationKind.MULTIPLE_PEOPLE for e in events)
    assert events[0].metadata['person_count'] == 2


def test_persistent_condition_reraises_after_window(make_session, fake_model, clock):
    fake_model.detections = people(2)
    session = make_session()
    session.start()

    for _ in range(10):
        session.tick()
        clock.advance(1.0)

    assert session.violation_count == 10


def test_empty_frame_raises_no_person(make_session, fake_model):
    fake_model.detections = []
    session = make_session()
    session.start()

    events = session.tick()

    assert [e.kind for e in events] == [ViolationKind.NO_PERSON]
    assert session.violation_count == 1
    assert "No person detected!" in notice_messages(session)


def test_phone_and_extra_person_in_same_tick(make_session, fake_model):
    fake_model.detections = people(2) + [("cell phone", 0.8, (40, 10, 50, 30))]
    session = make_session()
    session.start()

    events = session.tick()

    assert [e.kind for e in events] == [ViolationKind.MULTIPLE_PEOPLE, ViolationKind.PHONE_DETECTED]
    assert [e.count for e in events] == [1, 2]


def test_stop_is_idempotent_and_releases_tracks(make_session, devices):
    session = make_session()
    session.start()

    session.stop()
    session.stop()

    assert session.state is MonitorState.STOPPED
    assert session.live_track_count() == 0
    assert devices.live_tracks() == 0


def test_stop_before_start_is_safe(make_session, devices):
    session = make_session()

    session.stop()

    assert session.state is MonitorState.STOPPED
    assert session.start() is False
    assert devices.camera_requests == []


def test_no_callbacks_after_stop(make_session, fake_model, devices):
    fake_model.detections = people(3)
    session = make_session()
    received = []
    session.subscribe(received.append)
    session.start()

    session.stop()
    assert session.tick() == []
    assert session.report_visibility(True) is None
    devices.screen_tracks[0].end_sharing()

    assert received == []
    assert session.violation_count == 0


def test_late_inference_result_is_discarded(make_session, fake_model):
    fake_model.detections = people(2)
    fake_model.blocker = threading.Event()
    session = make_session()
    session.start()

    results = []
    worker = threading.Thread(target=lambda: results.append(session.tick()))
    worker.start()
    assert fake_model.entered.wait(timeout=2)

    session.stop()
    fake_model.blocker.set()
    worker.join(timeout=2)

    assert results == [[]]
    assert session.violation_count == 0


def test_tab_switch_counts_once_per_hide(make_session):
    session = make_session()
    session.start()

    first = session.report_visibility(True)
    assert session.report_visibility(True) is None
    session.report_visibility(False)
    second = session.report_visibility(True)

    assert first.kind is ViolationKind.TAB_SWITCH
    assert second.kind is ViolationKind.TAB_SWITCH
    assert session.violation_count == 2
    assert "Warning: Tab switching detected!" in notice_messages(session)


def test_screen_share_end_reported_exactly_once(make_session):
    session = make_session()
    received = []
    session.subscribe(received.append)
    session.start()

    assert session.end_screen_share() is True
    assert session.end_screen_share() is False

    assert [e.kind for e in received] == [ViolationKind.SCREEN_SHARE_STOPPED]
    assert "Screen sharing stopped! This is a violation." in notice_messages(session)


def test_counter_is_monotonic_across_kinds(make_session, fake_model, clock):
    session = make_session()
    received = []
    session.subscribe(received.append)
    session.start()

    session.report_visibility(True)
    fake_model.detections = []
    session.tick()
    clock.advance(2)
    fake_model.detections = people(2)
    session.tick()
    session.end_screen_share()

    assert [e.count for e in received] == [1, 2, 3, 4]
    assert session.violation_count == 4


def test_permission_denied_releases_everything(make_session):
    backend = FakeDevices(camera_error=PermissionError("denied by user"))
    session = make_session(device_backend=backend)

    with pytest.raises(PermissionDenied):
        session.start()

    assert session.state is MonitorState.IDLE
    assert session.live_track_count() == 0
    assert session.last_error.reason == "permission_denied"
    assert "Camera/Screen access denied. Please check site permissions." in notice_messages(session)


def test_screen_failure_stops_acquired_camera(make_session):
    backend = FakeDevices(screen_error=FileNotFoundError("no display"))
    session = make_session(device_backend=backend)

    with pytest.raises(DeviceNotFound):
        session.start()

    assert len(backend.camera_tracks) == 1
    assert backend.live_tracks() == 0


def test_model_failure_degrades_to_page_signals(make_session, failing_loader):
    session = make_session(loader=failing_loader)

    assert session.start() is True
    assert session.state is MonitorState.MONITORING
    assert session.tick() == []
    assert session.report_visibility(True).kind is ViolationKind.TAB_SWITCH
    assert "AI Model failed to load. Monitoring tab and screen activity only." in notice_messages(session)


def test_failing_inference_skips_tick(make_session, fake_model):
    fake_model.error = RuntimeError("cuda oom")
    session = make_session()
    session.start()

    assert session.tick() == []
    assert session.ticks_skipped == 1
    assert session.violation_count == 0


def test_deactivation_releases_tracks_and_reactivation_reacquires(make_session, devices):
    session = make_session()
    session.start()

    assert session.set_active(False) is True
    assert session.state is MonitorState.SUSPENDED
    assert devices.live_tracks() == 0
    assert session.report_visibility(True) is None

    assert session.set_active(True) is True
    assert session.state is MonitorState.ARMED
    assert len(devices.camera_tracks) == 2
    assert devices.live_tracks() == 2


def test_inactive_before_start_does_not_acquire(make_session, devices):
    session = make_session()
    session.set_active(False)

    assert session.start() is False
    assert devices.camera_requests == []


def test_overlay_snapshot_after_tick(make_session):
    session = make_session()
    session.start()
    assert session.snapshot_jpeg() is None

    session.tick()

    image = session.snapshot_jpeg()
    assert image[:2] == b'\xff\xd8'


def test_worker_thread_drives_detection(make_session, fake_model):
    fake_model.detections = people(2)
    session = make_session(run_worker=True)
    session.start()

    deadline = time.monotonic() + 3
    while session.violation_count == 0 and time.monotonic() < deadline:
        time.sleep(0.01)

    assert session.is_running
    assert session.violation_count >= 1

    session.stop()
    assert not session.is_running


def test_status_reports_counters(make_session):
    session = make_session()
    session.start()
    session.report_visibility(True)

    status = session.status()

    assert status['session_id'] == session.session_id
    assert status['monitor']['state'] == "armed"
    assert status['monitor']['violation_count'] == 1
    assert status['live_tracks'] == 2
    assert status['last_error'] is None


def test_concurrent_starts_acquire_hardware_once(make_session, devices):
    hold = devices.hold_camera = threading.Event()
    session = make_session()
    results = []

    starters = [threading.Thread(target=lambda: results.append(session.start())) for _ in range(2)]
    for starter in starters:
        starter.start()
    assert devices.camera_entered.wait(timeout=2)
    hold.set()
    for starter in starters:
        starter.join(timeout=2)

    assert results == [True, True]
    assert len(devices.camera_tracks) == 1
    assert len(devices.screen_tracks) == 1

    session.stop()
    session.stop()
    assert devices.live_tracks() == 0


def test_check_screen_reports_lost_display_once(make_session):
    display = {'gone': False}

    def grabber():
        if display['gone']:
            raise OSError("display went away")
        return None

    backend = FakeDevices(screen_grabber=grabber)
    session = make_session(device_backend=backend)
    session.start()

    assert session.check_screen() is True
    display['gone'] = True
    assert session.check_screen() is False
    assert session.check_screen() is False

    assert [e.kind for e in session.violations] == [ViolationKind.SCREEN_SHARE_STOPPED]
    assert backend.camera_tracks[0].is_live


def test_worker_notices_lost_display(make_session, config):
    config.screen_check_interval_seconds = 0.02
    backend = FakeDevices(screen_grabber=display_gone)
    session = make_session(device_backend=backend, run_worker=True)
    session.start()

    assert wait_for(lambda: session.violation_count > 0)
    time.sleep(0.05)

    assert [e.kind for e in session.violations] == [ViolationKind.SCREEN_SHARE_STOPPED]
    assert not backend.screen_tracks[0].is_live


def test_degraded_session_still_watches_display(make_session, failing_loader, config):
    config.screen_check_interval_seconds = 0.01
    backend = FakeDevices(screen_grabber=display_gone)
    session = make_session(loader=failing_loader, device_backend=backend, run_worker=True)
    session.start()

    assert session.state is MonitorState.MONITORING
    assert wait_for(lambda: session.violation_count > 0)
    assert [e.kind for e in session.violations] == [ViolationKind.SCREEN_SHARE_STOPPED]

    session.stop()
    assert not session.is_running


def test_deactivation_stops_live_worker(make_session, devices, fake_model):
    session = make_session(run_worker=True)
    session.start()
    assert wait_for(lambda: fake_model.calls > 0)
    assert session.is_running

    assert session.set_active(False) is True

    assert not session.is_running
    calls = fake_model.calls
    time.sleep(0.05)
    assert fake_model.calls == calls
    assert devices.live_tracks() == 0
    assert session.state is MonitorState.SUSPENDED


def test_inference_in_flight_is_discarded_after_deactivation(make_session, fake_model):
    fake_model.detections = people(2)
    fake_model.blocker = threading.Event()
    session = make_session()
    session.start()

    results = []
    worker = threading.Thread(target=lambda: results.append(session.tick()))
    worker.start()
    assert fake_model.entered.wait(timeout=2)

    session.set_active(False)
    fake_model.blocker.set()
    worker.join(timeout=2)

    assert results == [[]]
    assert session.violation_count == 0
    assert session.state is MonitorState.SUSPENDED
