#!/usr/bin/env python3
"""
Integrity Shield - Proctoring Flask Web Application

HTTP surface for proctored assessments: starts and stops proctoring
sessions, relays page signals (visibility, screen-share end), streams the
annotated camera feed and gates assessment submissions. Also hosts the
resume screening endpoints.
"""

import logging
import os
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from flask import Blueprint, Flask, Response, current_app, jsonify, request, stream_with_context

from capture import AcquisitionError, MediaAcquisition, MediaDevices, OpenCVMediaDevices
from detectors import ModelLoader
from integrity_engine import (
    ConfigurationService, GateDecision, MonitorState, ProctoringConfig, SubmissionGate,
    ViolationKind
)
from integrity_engine.session import ProctoringSession
from screening import ResumeMatcher, ResumeTextError, summarize_applications
from session_store import SessionNotFound, SessionStore
from shared_utils.records import AssessmentResult, RecordValidationError
from shared_utils.validation import sanitize_filename, validate_json_payload


logger = logging.getLogger(__name__)

# AcquisitionError.reason -> HTTP status
ACQUISITION_STATUS = {
    'permission_denied': 403,
    'device_not_found': 404,
    'unsupported': 501
}

MJPEG_BOUNDARY = "frame"


class ProctoringService:
    """
    Process-wide registry: one model loader, one device backend and one
    session store shared by every proctoring session.
    """

    def __init__(
        self,
        config: ProctoringConfig,
        devices: MediaDevices,
        model_loader: ModelLoader,
        store: Optional[SessionStore] = None,
        remote_scorer: Optional[Callable] = None
    ):
        self.config = config
        self.devices = devices
        self.model_loader = model_loader
        self.store = store or SessionStore(config.sessions_dir)
        self.matcher = ResumeMatcher(remote_scorer=remote_scorer, config=config.screening)
        self.sessions: Dict[str, ProctoringSession] = {}
        self.gates: Dict[str, SubmissionGate] = {}
        self.lock = threading.Lock()
        self.logger = logging.getLogger(f"{__name__}.ProctoringService")

    def start_session(self) -> ProctoringSession:
        """
        Create, register and start a proctoring session.

        Raises:
            AcquisitionError: camera or screen could not be acquired
        """
        session_id = self.store.create_session()
        session = ProctoringSession(
            acquisition=MediaAcquisition(self.devices, self.config.camera_width, self.config.camera_height),
            model_loader=self.model_loader,
            config=self.config,
            session_id=session_id
        )

        gate = SubmissionGate(self.config.max_violations)
        session.subscribe(gate)
        session.subscribe(self.store.violation_recorder(session_id))

        with self.lock:
            self.sessions[session_id] = session
            self.gates[session_id] = gate

        try:
            session.start()
        except AcquisitionError:
            session.stop()
            self.store.finalize_session(session_id, violation_count=0)
            with self.lock:
                self.sessions.pop(session_id, None)
                self.gates.pop(session_id, None)
            raise

        return session

    def get_session(self, session_id: str) -> ProctoringSession:
        with self.lock:
            session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def stop_session(self, session_id: str) -> Dict[str, Any]:
        """
        Stop a session, save its final frame and drop it from the registry.

        Stopping a session that was already dropped returns its stored summary.
        """
        with self.lock:
            session = self.sessions.get(session_id)
        if session is None:
            return self._stored_status(session_id)

        session.stop()

        snapshot = session.snapshot_jpeg()
        if snapshot is not None:
            self.store.save_snapshot(session_id, snapshot, label="final")

        file_counts = self.store.finalize_session(session_id, violation_count=session.violation_count)
        status = {**session.status(), 'file_counts': file_counts}

        with self.lock:
            self.sessions.pop(session_id, None)
            self.gates.pop(session_id, None)
        return status

    def session_status(self, session_id: str) -> Dict[str, Any]:
        with self.lock:
            session = self.sessions.get(session_id)
        if session is None:
            return self._stored_status(session_id)
        return session.status()

    def violation_report(self, session_id: str) -> Dict[str, Any]:
        """Violations of a live session, or of a stopped one from its audit log."""
        with self.lock:
            session = self.sessions.get(session_id)

        if session is not None:
            violations = [event.to_dict() for event in session.violations]
            counts = session.monitor.counts_by_kind()
        else:
            violations = self.store.load_violations(session_id)
            counts = {}
            for record in violations:
                counts[record['kind']] = counts.get(record['kind'], 0) + 1

        return {
            'session_id': session_id,
            'violation_count': len(violations),
            'counts_by_kind': counts,
            'violations': violations
        }

    def _stored_status(self, session_id: str) -> Dict[str, Any]:
        summary = self.store.get_session_summary(session_id)
        return {
            'session_id': session_id,
            'stopped': summary.get('status') == "completed",
            'live_tracks': 0,
            'summary': summary
        }

    def gate_for(self, session_id: str) -> SubmissionGate:
        """Live gate for a registered session, or one rebuilt from the audit log."""
        with self.lock:
            gate = self.gates.get(session_id)
        if gate is not None:
            return gate

        gate = SubmissionGate(self.config.max_violations)
        for record in self.store.load_violations(session_id):
            gate.violations.append(record['kind'])
        return gate

    def submit_assessment(self, assessment_id: str, payload: Dict[str, Any]):
        """
        Gate and persist an assessment submission.

        A flagged submission is still saved, with flagged=True.

        Returns:
            Tuple of (GateDecision, AssessmentResult)
        """
        session_id = payload['sessionId']
        decision: GateDecision = self.gate_for(session_id).evaluate()

        result = AssessmentResult.from_dict({
            'assessmentId': assessment_id,
            'userId': payload['userId'],
            'technicalCode': payload.get('technicalCode', ""),
            'psychometricScores': payload.get('psychometricScores', {}),
            'mcqAnswers': payload.get('mcqAnswers', {}),
            'textResponse': payload.get('textResponse', ""),
            'violations': decision.violations,
            'flagged': decision.flagged
        })
        self.store.save_assessment_result(session_id, result)
        return decision, result

    def screen_resume(self, payload: Dict[str, Any]):
        """
        Score a resume and persist the analysis and candidate notification.

        The notification goes to the candidate's proctoring session folder
        when ``sessionId`` is given.

        Returns:
            Tuple of (ResumeAnalysis, Notification or None)
        """
        session_id = payload.get('sessionId')
        if session_id is not None and not self.store.exists(session_id):
            raise SessionNotFound(session_id)

        analysis, notification = self.matcher.analyze(
            payload['resumeText'],
            payload['jobDescription'],
            sanitize_filename(payload['fileName']),
            job_id=payload.get('jobId'),
            user_id=payload.get('userId')
        )

        self.store.save_resume_analysis(analysis)
        if notification is not None:
            self.store.save_notification(session_id, notification)
        return analysis, notification

    def screening_summary(self, job_id: Optional[str] = None) -> Dict[str, Any]:
        return summarize_applications(self.store.load_resume_analyses(job_id))

    def get_health_status(self) -> Dict[str, Any]:
        with self.lock:
            sessions = list(self.sessions.values())
        return {
            'sessions': len(sessions),
            'running_sessions': sum(1 for s in sessions if s.is_running),
            'model': self.model_loader.get_health_status()
        }

    def shutdown(self) -> None:
        """Stop every session; each one releases its hardware."""
        with self.lock:
            sessions = list(self.sessions.values())

        for session in sessions:
            try:
                session.stop()
            except Exception as e:
                self.logger.error(f"Error stopping session {session.session_id}: {e}")

        self.logger.info(f"Shut down {len(sessions)} sessions")


proctoring_bp = Blueprint('proctoring', __name__)


def _service() -> ProctoringService:
    return current_app.extensions['proctoring']


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _bad_request(errors):
    return jsonify({'success': False, 'error': '; '.join(errors), 'errors': errors}), 400


@proctoring_bp.errorhandler(SessionNotFound)
def session_not_found(error):
    return jsonify({'success': False, 'error': str(error)}), 404


@proctoring_bp.errorhandler(RecordValidationError)
def invalid_record(error):
    return jsonify({'success': False, 'error': str(error), 'errors': error.errors}), 400


@proctoring_bp.route('/api/proctoring/sessions', methods=['POST'])
def start_session():
    """Acquire capture and start monitoring for a new session."""
    try:
        session = _service().start_session()
    except AcquisitionError as e:
        return jsonify({
            'success': False,
            'error': e.user_message,
            'reason': e.reason
        }), ACQUISITION_STATUS.get(e.reason, 500)

    return jsonify({'success': True, **session.status()}), 201


@proctoring_bp.route('/api/proctoring/sessions/<session_id>', methods=['GET'])
def session_status(session_id):
    return jsonify(_service().session_status(session_id))


@proctoring_bp.route('/api/proctoring/sessions/<session_id>/stop', methods=['POST'])
def stop_session(session_id):
    status = _service().stop_session(session_id)
    logger.info(f"Stopped session {session_id} via API")
    return jsonify({'success': True, **status})


@proctoring_bp.route('/api/proctoring/sessions/<session_id>/active', methods=['POST'])
def set_active(session_id):
    session = _service().get_session(session_id)
    payload = _json_body()
    if not isinstance(payload.get('active'), bool):
        return _bad_request(["Field 'active' must be a boolean"])

    try:
        changed = session.set_active(payload['active'])
    except AcquisitionError as e:
        return jsonify({
            'success': False,
            'error': e.user_message,
            'reason': e.reason
        }), ACQUISITION_STATUS.get(e.reason, 500)

    return jsonify({'success': True, 'changed': changed, 'state': session.state.value})


@proctoring_bp.route('/api/proctoring/sessions/<session_id>/visibility', methods=['POST'])
def report_visibility(session_id):
    session = _service().get_session(session_id)
    payload = _json_body()
    if not isinstance(payload.get('hidden'), bool):
        return _bad_request(["Field 'hidden' must be a boolean"])

    event = session.report_visibility(payload['hidden'])
    return jsonify({
        'success': True,
        'violation': event.to_dict() if event else None,
        'violation_count': session.violation_count
    })


@proctoring_bp.route('/api/proctoring/sessions/<session_id>/screen-ended', methods=['POST'])
def screen_ended(session_id):
    session = _service().get_session(session_id)
    ended = session.end_screen_share()
    return jsonify({
        'success': True,
        'ended': ended,
        'violation_count': session.violation_count
    })


@proctoring_bp.route('/api/proctoring/sessions/<session_id>/violations', methods=['GET'])
def list_violations(session_id):
    return jsonify(_service().violation_report(session_id))


@proctoring_bp.route('/api/proctoring/sessions/<session_id>/snapshot.jpg', methods=['GET'])
def snapshot(session_id):
    image = _service().get_session(session_id).snapshot_jpeg()
    if image is None:
        return jsonify({'success': False, 'error': 'No frame available yet'}), 404
    return Response(image, mimetype='image/jpeg')


@proctoring_bp.route('/api/proctoring/sessions/<session_id>/video_feed', methods=['GET'])
def video_feed(session_id):
    """MJPEG stream of the annotated camera feed until the session stops."""
    session = _service().get_session(session_id)
    interval = max(session.config.tick_interval_seconds, 0.01)

    def generate():
        while session.state is not MonitorState.STOPPED:
            image = session.snapshot_jpeg()
            if image is not None:
                yield (b'--' + MJPEG_BOUNDARY.encode() + b'\r\n'
                       b'Content-Type: image/jpeg\r\n\r\n' + image + b'\r\n')
            time.sleep(interval)

    return Response(stream_with_context(generate()),
                    mimetype=f'multipart/x-mixed-replace; boundary={MJPEG_BOUNDARY}')


@proctoring_bp.route('/api/assessments/<assessment_id>/submit', methods=['POST'])
def submit_assessment(assessment_id):
    payload = _json_body()
    is_valid, errors = validate_json_payload(payload, ['sessionId', 'userId'])
    if not is_valid:
        return _bad_request(errors)

    decision, result = _service().submit_assessment(assessment_id, payload)
    return jsonify({
        'success': True,
        'flagged': decision.flagged,
        'message': decision.reason or "Assessment submitted successfully!",
        'decision': decision.to_dict(),
        'result': result.to_dict()
    })


@proctoring_bp.route('/api/screening/match', methods=['POST'])
def match_resume():
    payload = _json_body()
    required = ['resumeText', 'jobDescription', 'fileName']
    is_valid, errors = validate_json_payload(payload, required)
    if not is_valid:
        return _bad_request(errors)
    errors = [f"Field '{name}' must be a string" for name in required if not isinstance(payload[name], str)]
    if errors:
        return _bad_request(errors)

    try:
        analysis, notification = _service().screen_resume(payload)
    except ResumeTextError as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    return jsonify({
        'success': True,
        'data': analysis.to_dict(),
        'notification': notification.to_dict() if notification else None
    })


@proctoring_bp.route('/api/screening/summary', methods=['GET'])
def screening_summary():
    """Dashboard counters over stored analyses, optionally for one job."""
    return jsonify({'success': True, **_service().screening_summary(request.args.get('jobId'))})


def create_app(config: Optional[ProctoringConfig] = None,
               devices: Optional[MediaDevices] = None,
               model_loader: Optional[ModelLoader] = None) -> Flask:
    """
    Application factory.

    Args:
        config: Proctoring settings; loaded by ConfigurationService by default
        devices: Media device backend; OpenCV camera and PIL screen grab by default
        model_loader: Shared detection model loader

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    app.secret_key = os.environ.get('FLASK_SECRET_KEY', 'dev-secret-key-change-in-production')

    config = config or ConfigurationService().load_configuration()
    devices = devices or OpenCVMediaDevices(config.camera_index)
    model_loader = model_loader or ModelLoader(config.model_path)

    app.extensions['proctoring'] = ProctoringService(config, devices, model_loader)
    app.register_blueprint(proctoring_bp)

    @app.route('/health')
    def health_check():
        """Health check endpoint."""
        try:
            return jsonify({
                'status': 'healthy',
                'timestamp': datetime.now().isoformat(),
                'components': _service().get_health_status(),
                'violation_kinds': [kind.value for kind in ViolationKind]
            })
        except Exception as e:
            return jsonify({
                'status': 'unhealthy',
                'error': str(e),
                'timestamp': datetime.now().isoformat()
            }), 500

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 errors."""
        return jsonify({'success': False, 'error': 'Not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors."""
        return jsonify({'success': False, 'error': 'Internal server error'}), 500

    return app


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    print("🚀 Starting Integrity Shield Proctoring Service...")

    app = create_app()

    # Load the model up front; failure leaves tab/screen monitoring only
    if app.extensions['proctoring'].model_loader.try_load() is None:
        print("⚠️  Detection model unavailable - continuing with limited functionality")

    debug_mode = os.environ.get('FLASK_ENV') == 'development'
    port = int(os.environ.get('PORT', 5000))

    print(f"🌐 Starting Flask server on port {port}")
    print(f"🔧 Debug mode: {debug_mode}")

    try:
        app.run(host='0.0.0.0', port=port, debug=debug_mode, threaded=True, use_reloader=False)
    finally:
        app.extensions['proctoring'].shutdown()
