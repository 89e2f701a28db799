"""
Entity records exchanged with the hiring platform's data layer.

Each record is validated where external data enters the system; from_dict()
collects every problem before raising so callers can report them together.
Serialized keys are camelCase, as stored by the data layer.
"""

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


class RecordValidationError(ValueError):
    """Raised when incoming data does not match a record's shape."""

    def __init__(self, record: str, errors: List[str]):
        super().__init__(f"Invalid {record}: {'; '.join(errors)}")
        self.record = record
        self.errors = errors


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace('Z', '+00:00'))


# (python name, expected types, required)
FieldSpec = Tuple[str, tuple, bool]


class Record:
    """Shared from_dict()/to_dict() for the dataclass records below."""

    FIELDS: List[FieldSpec] = []

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        if not isinstance(data, dict):
            raise RecordValidationError(cls.__name__, ["expected an object"])

        errors = []
        values: Dict[str, Any] = {}

        for name, types, required in cls.FIELDS:
            key = _camel(name)
            if key in data:
                value = data[key]
            elif name in data:
                value = data[name]
            else:
                if required:
                    errors.append(f"missing field '{key}'")
                continue

            if value is None and not required:
                values[name] = None
                continue

            if datetime in types:
                try:
                    values[name] = _parse_datetime(value)
                except (TypeError, ValueError):
                    errors.append(f"field '{key}' is not an ISO timestamp")
                continue

            if isinstance(value, bool) and bool not in types:
                errors.append(f"field '{key}' has wrong type bool")
                continue
            if not isinstance(value, types):
                errors.append(f"field '{key}' has wrong type {type(value).__name__}")
                continue

            if list in types and not all(isinstance(item, str) for item in value):
                errors.append(f"field '{key}' must be a list of strings")
                continue

            values[name] = value

        errors.extend(cls._check(values))
        if errors:
            raise RecordValidationError(cls.__name__, errors)
        return cls(**values)

    @classmethod
    def _check(cls, values: Dict[str, Any]) -> List[str]:
        """Record-specific rules on top of field types."""
        return []

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, list):
                value = list(value)
            elif isinstance(value, dict):
                value = dict(value)
            result[_camel(f.name)] = value
        return result


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Job(Record):
    title: str
    description: str
    department: str = ""
    location: str = ""
    criteria: str = ""
    status: str = "open"
    applicants_count: int = 0
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=datetime.now)

    FIELDS = [
        ('id', (str,), False),
        ('title', (str,), True),
        ('description', (str,), True),
        ('department', (str,), False),
        ('location', (str,), False),
        ('criteria', (str,), False),
        ('status', (str,), False),
        ('applicants_count', (int,), False),
        ('created_at', (datetime,), False),
    ]

    @classmethod
    def _check(cls, values):
        errors = []
        if 'title' in values and not values['title'].strip():
            errors.append("field 'title' must not be empty")
        if values.get('applicants_count', 0) < 0:
            errors.append("field 'applicantsCount' must not be negative")
        return errors


RESUME_CATEGORIES = ("High Match", "Potential", "Reject")


@dataclass
class ResumeAnalysis(Record):
    candidate_name: str
    file_name: str
    match_score: int
    category: str
    reasoning: str
    skills_found: List[str]
    missing_skills: List[str]
    experience_summary: str
    job_description: str = ""
    job_id: Optional[str] = None
    user_id: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=datetime.now)

    FIELDS = [
        ('id', (str,), False),
        ('candidate_name', (str,), True),
        ('file_name', (str,), True),
        ('match_score', (int, float), True),
        ('category', (str,), True),
        ('reasoning', (str,), True),
        ('skills_found', (list,), True),
        ('missing_skills', (list,), True),
        ('experience_summary', (str,), True),
        ('job_description', (str,), False),
        ('job_id', (str,), False),
        ('user_id', (str,), False),
        ('created_at', (datetime,), False),
    ]

    @classmethod
    def _check(cls, values):
        errors = []
        score = values.get('match_score')
        if score is not None and not 0 <= score <= 100:
            errors.append("field 'matchScore' must be between 0 and 100")
        if 'category' in values and values['category'] not in RESUME_CATEGORIES:
            errors.append(f"field 'category' must be one of {', '.join(RESUME_CATEGORIES)}")
        return errors

    @property
    def is_selected(self) -> bool:
        return self.category in ("High Match", "Potential")


@dataclass
class Interview(Record):
    user_id: str
    role: Optional[str] = None
    transcript: List[Dict[str, str]] = field(default_factory=list)
    duration: Optional[int] = None
    finalized: bool = False
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=datetime.now)

    FIELDS = [
        ('id', (str,), False),
        ('user_id', (str,), True),
        ('role', (str,), False),
        ('duration', (int,), False),
        ('finalized', (bool,), False),
        ('created_at', (datetime,), False),
    ]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        interview = super().from_dict(data)
        transcript = data.get('transcript') or []
        errors = []
        if not isinstance(transcript, list):
            errors.append("field 'transcript' must be a list")
        else:
            for i, turn in enumerate(transcript):
                if not isinstance(turn, dict) or not isinstance(turn.get('role'), str) \
                        or not isinstance(turn.get('content'), str):
                    errors.append(f"transcript[{i}] must have string 'role' and 'content'")
        if errors:
            raise RecordValidationError(cls.__name__, errors)
        interview.transcript = [{'role': t['role'], 'content': t['content']} for t in transcript]
        return interview


FEEDBACK_CATEGORIES = (
    'communicationSkills', 'technicalKnowledge', 'problemSolving',
    'culturalFit', 'confidenceClarity'
)


@dataclass
class Feedback(Record):
    interview_id: str
    user_id: str
    total_score: int
    category_scores: Dict[str, int]
    strengths: List[str]
    areas_for_improvement: List[str]
    final_assessment: str
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=datetime.now)

    FIELDS = [
        ('id', (str,), False),
        ('interview_id', (str,), True),
        ('user_id', (str,), True),
        ('total_score', (int, float), True),
        ('category_scores', (dict,), True),
        ('strengths', (list,), True),
        ('areas_for_improvement', (list,), True),
        ('final_assessment', (str,), True),
        ('created_at', (datetime,), False),
    ]

    @classmethod
    def _check(cls, values):
        errors = []
        total = values.get('total_score')
        if total is not None and not 0 <= total <= 100:
            errors.append("field 'totalScore' must be between 0 and 100")
        scores = values.get('category_scores')
        if scores is not None:
            for category in FEEDBACK_CATEGORIES:
                score = scores.get(category)
                if not isinstance(score, (int, float)) or isinstance(score, bool) or not 0 <= score <= 100:
                    errors.append(f"categoryScores.{category} must be a number between 0 and 100")
        return errors


NOTIFICATION_TYPES = ("success", "rejection", "info")


@dataclass
class Notification(Record):
    user_id: str
    title: str
    message: str
    type: str = "info"
    analysis_id: Optional[str] = None
    read: bool = False
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=datetime.now)

    FIELDS = [
        ('id', (str,), False),
        ('user_id', (str,), True),
        ('title', (str,), True),
        ('message', (str,), True),
        ('type', (str,), False),
        ('analysis_id', (str,), False),
        ('read', (bool,), False),
        ('created_at', (datetime,), False),
    ]

    @classmethod
    def _check(cls, values):
        if values.get('type', 'info') not in NOTIFICATION_TYPES:
            return [f"field 'type' must be one of {', '.join(NOTIFICATION_TYPES)}"]
        return []


@dataclass
class AssessmentResult(Record):
    assessment_id: str
    user_id: str
    technical_code: str = ""
    psychometric_scores: Dict[str, int] = field(default_factory=dict)
    mcq_answers: Dict[str, str] = field(default_factory=dict)
    text_response: str = ""
    violations: List[str] = field(default_factory=list)
    flagged: bool = False
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=datetime.now)

    FIELDS = [
        ('id', (str,), False),
        ('assessment_id', (str,), True),
        ('user_id', (str,), True),
        ('technical_code', (str,), False),
        ('psychometric_scores', (dict,), False),
        ('mcq_answers', (dict,), False),
        ('text_response', (str,), False),
        ('violations', (list,), False),
        ('flagged', (bool,), False),
        ('created_at', (datetime,), False),
    ]
