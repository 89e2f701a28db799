#!/usr/bin/env python3
"""
Session Store - UUID Session Management

File-backed storage for proctoring sessions with a UUID-based folder
structure:

    sessions/<uuid>/
        session_metadata.json
        violations.jsonl
        snapshots/
        results/
        notifications/
    sessions/screening/
        analyses/
        notifications/
"""

import json
import logging
import re
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from integrity_engine.models import ViolationEvent
from shared_utils.records import AssessmentResult, Notification, RecordValidationError, ResumeAnalysis
from shared_utils.validation import validate_session_id


class SessionNotFound(KeyError):
    """Raised for unknown or malformed session ids."""

    def __init__(self, session_id: str):
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self):
        return f"Session {self.session_id} not found"


SUBDIRECTORIES = ("snapshots", "results", "notifications")
METADATA_FILE = "session_metadata.json"
VIOLATIONS_FILE = "violations.jsonl"
SCREENING_DIR = "screening"


class SessionStore:
    """Manages proctoring sessions with UUID-based folder structure."""

    def __init__(self, base_dir: Union[str, Path] = "sessions"):
        """Initialize the session store."""
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self.logger = logging.getLogger(f"{__name__}.SessionStore")
        self.logger.info(f"SessionStore initialized with base directory: {self.base_dir}")

    def _sanitize_filename(self, text: str) -> str:
        """Sanitize text for use in filenames."""
        # Keep only alphanumeric, underscore, and hyphen
        text = re.sub(r'[^a-zA-Z0-9_-]', '_', text)
        text = re.sub(r'_+', '_', text).strip('_')

        if len(text) > 50:
            text = text[:50]

        return text.lower() or 'unknown'

    def _session_dir(self, session_id: str) -> Path:
        if not validate_session_id(session_id):
            raise SessionNotFound(session_id)

        session_dir = self.base_dir / session_id.lower()
        if not session_dir.is_dir():
            raise SessionNotFound(session_id)
        return session_dir

    def exists(self, session_id: str) -> bool:
        try:
            self._session_dir(session_id)
        except SessionNotFound:
            return False
        return True

    def create_session(self, session_id: Optional[str] = None) -> str:
        """
        Create the folder structure for a session.

        Args:
            session_id: UUID to use; a new one is generated by default

        Returns:
            The session id

        Raises:
            ValueError: session_id is not a UUID
        """
        if session_id is None:
            session_id = str(uuid.uuid4())
        elif not validate_session_id(session_id):
            raise ValueError(f"Invalid session id: {session_id}")
        session_id = session_id.lower()

        session_dir = self.base_dir / session_id
        session_dir.mkdir(exist_ok=True)
        for name in SUBDIRECTORIES:
            (session_dir / name).mkdir(exist_ok=True)

        metadata = {
            "session_id": session_id,
            "created_at": datetime.now().isoformat(),
            "status": "active",
            "violations": 0,
            "snapshots": 0,
            "results": 0,
            "notifications": 0
        }
        self._write_json(session_dir / METADATA_FILE, metadata)

        self.logger.info(f"Created session: {session_id}")
        return session_id

    def append_violation(self, session_id: str, event: ViolationEvent) -> None:
        """Append one violation to the session's JSON lines audit log."""
        session_dir = self._session_dir(session_id)
        record = {**event.to_dict(), "session_id": session_id}

        with self._lock:
            with open(session_dir / VIOLATIONS_FILE, 'a', encoding='utf-8') as f:
                f.write(json.dumps(record) + "\n")
            self._update_metadata(session_dir, "violations", 1)

    def violation_recorder(self, session_id: str):
        """Bus subscriber that appends every published violation for a session."""
        def record(event: ViolationEvent) -> None:
            self.append_violation(session_id, event)
        return record

    def load_violations(self, session_id: str) -> List[Dict[str, Any]]:
        session_dir = self._session_dir(session_id)
        log_file = session_dir / VIOLATIONS_FILE
        if not log_file.exists():
            return []

        violations = []
        with open(log_file, 'r', encoding='utf-8') as f:
            for line_number, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    violations.append(json.loads(line))
                except json.JSONDecodeError:
                    self.logger.warning(f"Skipping corrupt line {line_number} in {log_file}")
        return violations

    def save_snapshot(self, session_id: str, image_data: bytes, label: str = "snapshot",
                      timestamp: Optional[datetime] = None) -> str:
        """Save a JPEG snapshot with timestamp."""
        session_dir = self._session_dir(session_id)
        timestamp = timestamp or datetime.now()

        filename = f"{self._sanitize_filename(label)}_{timestamp.strftime('%Y%m%d_%H%M%S_%f')}.jpg"
        filepath = session_dir / "snapshots" / filename

        with open(filepath, 'wb') as f:
            f.write(image_data)

        with self._lock:
            self._update_metadata(session_dir, "snapshots", 1)
        self.logger.debug(f"Saved snapshot: {filename}")
        return str(filepath)

    def save_assessment_result(self, session_id: str, result: AssessmentResult) -> str:
        session_dir = self._session_dir(session_id)
        filepath = session_dir / "results" / f"assessment_{result.id}.json"
        self._write_json(filepath, result.to_dict())

        with self._lock:
            self._update_metadata(session_dir, "results", 1)
        self.logger.info(f"Saved assessment result {result.id} for session {session_id}")
        return str(filepath)

    def save_notification(self, session_id: Optional[str], notification: Notification) -> str:
        """
        Save a candidate notification.

        Goes to the session's folder when a session id is given, otherwise
        to the screening folder.
        """
        if session_id is None:
            filepath = self._screening_dir("notifications") / f"notification_{notification.id}.json"
            self._write_json(filepath, notification.to_dict())
            return str(filepath)

        session_dir = self._session_dir(session_id)
        filepath = session_dir / "notifications" / f"notification_{notification.id}.json"
        self._write_json(filepath, notification.to_dict())

        with self._lock:
            self._update_metadata(session_dir, "notifications", 1)
        return str(filepath)

    def save_resume_analysis(self, analysis: ResumeAnalysis) -> str:
        filepath = self._screening_dir("analyses") / f"analysis_{analysis.id}.json"
        self._write_json(filepath, analysis.to_dict())
        self.logger.info(f"Saved resume analysis {analysis.id} ({analysis.category})")
        return str(filepath)

    def load_resume_analyses(self, job_id: Optional[str] = None) -> List[ResumeAnalysis]:
        """Stored analyses, oldest first, optionally for one job only."""
        analyses = []
        for path in self._screening_dir("analyses").glob("analysis_*.json"):
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    analysis = ResumeAnalysis.from_dict(json.load(f))
            except (json.JSONDecodeError, RecordValidationError) as e:
                self.logger.warning(f"Skipping unreadable analysis {path.name}: {e}")
                continue
            if job_id is None or analysis.job_id == job_id:
                analyses.append(analysis)

        return sorted(analyses, key=lambda a: a.created_at)

    def _screening_dir(self, name: str) -> Path:
        directory = self.base_dir / SCREENING_DIR / name
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def finalize_session(self, session_id: str, violation_count: Optional[int] = None) -> Dict[str, int]:
        """
        Mark a session completed and return file counts.

        Args:
            session_id: Session to finalize
            violation_count: Monitor counter at stop time, recorded alongside
                the audit log line count

        Returns:
            Dictionary of counts per kind of stored file
        """
        session_dir = self._session_dir(session_id)

        file_counts = {name: len(list((session_dir / name).glob("*"))) for name in SUBDIRECTORIES}
        file_counts["violations"] = len(self.load_violations(session_id))

        with self._lock:
            metadata = self._read_metadata(session_dir)
            metadata.update({
                "status": "completed",
                "completed_at": datetime.now().isoformat(),
                "file_counts": file_counts
            })
            if violation_count is not None:
                metadata["violation_count"] = violation_count
            self._write_json(session_dir / METADATA_FILE, metadata)

        self.logger.info(f"Finalized session {session_id}: {file_counts}")
        return file_counts

    def get_session_summary(self, session_id: str) -> Dict[str, Any]:
        return self._read_metadata(self._session_dir(session_id))

    def list_sessions(self) -> List[str]:
        """List all session IDs."""
        return sorted(p.name for p in self.base_dir.iterdir()
                      if p.is_dir() and validate_session_id(p.name))

    def _read_metadata(self, session_dir: Path) -> Dict[str, Any]:
        metadata_file = session_dir / METADATA_FILE
        if not metadata_file.exists():
            return {}
        with open(metadata_file, 'r', encoding='utf-8') as f:
            return json.load(f)

    def _update_metadata(self, session_dir: Path, field: str, increment: int):
        """Update session counters; caller holds the lock."""
        metadata = self._read_metadata(session_dir)
        metadata[field] = metadata.get(field, 0) + increment
        metadata["last_updated"] = datetime.now().isoformat()
        self._write_json(session_dir / METADATA_FILE, metadata)

    @staticmethod
    def _write_json(filepath: Path, data: Dict[str, Any]) -> None:
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
