"""
Resume Match - scores a resume against a job description.

A remote scorer (an AI service, injected as a callable) is tried first.
When it is missing or fails for any reason, a local keyword heuristic
produces the analysis instead, so screening always returns a result.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any, Callable, Dict, Iterable, List, Optional

from integrity_engine.config import ScreeningConfig
from shared_utils.records import RESUME_CATEGORIES, Notification, ResumeAnalysis


logger = logging.getLogger(__name__)

MIN_RESUME_TEXT_LENGTH = 50

TECH_LIBRARY = (
    "java", "php", "javascript", "python", "c", "c++", "c#", "ruby", "golang", "rust",
    "react", "angular", "vue", "next.js", "typescript", "html", "css",
    "mysql", "postgresql", "oracle", "sql", "mongodb", "redis", "firebase", "supabase",
    "aws", "azure", "docker", "kubernetes", "jenkins", "git", "jira", "selenium",
    "rest api", "system design", "microservices", "testing", "agile", "windchill", "wbm"
)

STOP_WORDS = frozenset({"and", "with", "the", "for"})
KEYWORD_SEPARATORS = re.compile(r"[,\n•&]")

# (resume_text, job_description) -> dict with the ResumeAnalysis fields in camelCase
RemoteScorer = Callable[[str, str], Dict[str, Any]]


class ResumeTextError(ValueError):
    """Raised when the extracted resume text is unusable."""
    pass


def extract_jd_keywords(job_description: str) -> List[str]:
    """
    Split a job description into candidate requirement phrases.

    Args:
        job_description: Free-text job description

    Returns:
        Trimmed phrases longer than two characters, stop words removed
    """
    keywords = []
    for part in KEYWORD_SEPARATORS.split(job_description or ""):
        keyword = part.strip()
        if len(keyword) > 2 and keyword.lower() not in STOP_WORDS:
            keywords.append(keyword)
    return keywords


def categorize(score: float, config: Optional[ScreeningConfig] = None) -> str:
    config = config or ScreeningConfig()
    if score >= config.high_match_threshold:
        return "High Match"
    if score >= config.potential_threshold:
        return "Potential"
    return "Reject"


def candidate_name_from_file(file_name: str) -> str:
    """'Jane_Doe_CV.pdf' -> 'Jane Doe CV'"""
    name = PurePath(file_name or "").name
    stem, dot, _ = name.rpartition('.')
    if dot and stem:
        name = stem
    return name.replace('_', ' ').strip()


@dataclass
class MatchResult:
    """Scored fields before they become a ResumeAnalysis record."""
    candidate_name: str
    match_score: int
    category: str
    reasoning: str
    skills_found: List[str]
    missing_skills: List[str]
    experience_summary: str
    source: str = "fallback"


def fallback_match(resume_text: str, job_description: str, file_name: str = "",
                   config: Optional[ScreeningConfig] = None) -> MatchResult:
    """
    Local keyword matching used when no remote scorer is available.

    Args:
        resume_text: Plain text extracted from the resume
        job_description: Job description text
        file_name: Uploaded file name; the candidate name is derived from it
        config: Score constants and category thresholds

    Returns:
        MatchResult with source 'fallback'
    """
    config = config or ScreeningConfig()
    jd_lower = (job_description or "").lower()
    resume_lower = (resume_text or "").lower()
    keywords = extract_jd_keywords(job_description)

    skills_found = [skill for skill in TECH_LIBRARY if skill in resume_lower and skill in jd_lower]
    for keyword in keywords:
        if keyword.lower() in resume_lower and keyword not in skills_found:
            skills_found.append(keyword)

    missing_skills = [keyword for keyword in keywords if keyword.lower() not in resume_lower][:5]

    score = min(config.base_score + config.per_skill_points * len(skills_found), config.score_cap)

    reasoning = (
        "Evaluation performed via local semantic matching. The candidate demonstrates direct "
        f"experience with {', '.join(skills_found[:3]) or 'the core requirements'}. While the profile "
        "matches the foundational technical stack, further assessment is recommended to verify "
        "architectural depth."
    )
    summary = (
        "The candidate's profile shows a history of working with "
        f"{' and '.join(skills_found[:2]) or 'modern technologies'} as evidenced in the provided documentation."
    )

    return MatchResult(
        candidate_name=candidate_name_from_file(file_name),
        match_score=score,
        category=categorize(score, config),
        reasoning=reasoning,
        skills_found=skills_found or ["Software Engineering"],
        missing_skills=missing_skills,
        experience_summary=summary
    )


def build_notification(analysis: ResumeAnalysis) -> Optional[Notification]:
    """Candidate notification for an analysis; None without a user id."""
    if not analysis.user_id:
        return None

    if analysis.is_selected:
        return Notification(
            user_id=analysis.user_id,
            title="Application Moved Forward!",
            message=("Great news! Your profile passed the initial AI screening for the position. "
                     "Next steps: 1. Technical MCQ Round 2. AI-Voice Personal Interview."),
            type="success",
            analysis_id=analysis.id
        )

    missing = " & ".join(analysis.missing_skills[:2]) or "required domains"
    return Notification(
        user_id=analysis.user_id,
        title="Application Update",
        message=("Unfortunately, your profile did not match the specific technical criteria for "
                 f"this role. REASON: Missing key experience in {missing}."),
        type="rejection",
        analysis_id=analysis.id
    )


class ResumeMatcher:
    """
    Produces ResumeAnalysis records (and candidate notifications) for uploads.
    """

    def __init__(self, remote_scorer: Optional[RemoteScorer] = None,
                 config: Optional[ScreeningConfig] = None):
        self.remote_scorer = remote_scorer
        self.config = config or ScreeningConfig()
        self.fallback_count = 0
        self.logger = logging.getLogger(f"{__name__}.ResumeMatcher")

    def score(self, resume_text: str, job_description: str, file_name: str = "") -> MatchResult:
        """Remote scoring with local fallback on any failure."""
        if self.remote_scorer is not None:
            try:
                return self._score_remote(resume_text, job_description, file_name)
            except Exception as e:
                self.logger.warning(f"Remote scoring failed, running local analysis: {e}")

        self.fallback_count += 1
        return fallback_match(resume_text, job_description, file_name, self.config)

    def _score_remote(self, resume_text: str, job_description: str, file_name: str) -> MatchResult:
        data = self.remote_scorer(resume_text, job_description)
        score = int(round(float(data["matchScore"])))
        if not 0 <= score <= 100:
            raise ValueError(f"remote match score out of range: {score}")

        category = data.get("category") or categorize(score, self.config)
        if category not in RESUME_CATEGORIES:
            raise ValueError(f"remote category not recognised: {category!r}")
        for key in ("skillsFound", "missingSkills"):
            if not isinstance(data.get(key, []), list):
                raise ValueError(f"remote {key} must be a list")

        return MatchResult(
            candidate_name=str(data.get("candidateName") or candidate_name_from_file(file_name)),
            match_score=score,
            category=category,
            reasoning=str(data.get("reasoning", "")),
            skills_found=[str(s) for s in data.get("skillsFound", [])],
            missing_skills=[str(s) for s in data.get("missingSkills", [])],
            experience_summary=str(data.get("experienceSummary", "")),
            source="remote"
        )

    def analyze(self, resume_text: str, job_description: str, file_name: str,
                job_id: Optional[str] = None, user_id: Optional[str] = None):
        """
        Score a resume and build the records to persist.

        Args:
            resume_text: Text extracted from the uploaded resume
            job_description: Job description to match against
            file_name: Uploaded file name
            job_id: Job being applied to, if any
            user_id: Candidate user id; enables the notification

        Returns:
            Tuple of (ResumeAnalysis, Notification or None)

        Raises:
            ResumeTextError: resume text too short or job description missing
            RecordValidationError: scorer produced an invalid analysis
        """
        if not job_description or not job_description.strip():
            raise ResumeTextError("Missing job description")
        if not resume_text or len(resume_text.strip()) < MIN_RESUME_TEXT_LENGTH:
            raise ResumeTextError("Extracted text is too short. The file might be an image or protected.")

        result = self.score(resume_text, job_description, file_name)

        analysis = ResumeAnalysis.from_dict({
            'candidateName': result.candidate_name,
            'fileName': file_name,
            'matchScore': result.match_score,
            'category': result.category,
            'reasoning': result.reasoning,
            'skillsFound': result.skills_found,
            'missingSkills': result.missing_skills,
            'experienceSummary': result.experience_summary,
            'jobDescription': job_description,
            'jobId': job_id,
            'userId': user_id
        })

        self.logger.info(f"Resume '{file_name}' scored {analysis.match_score} "
                         f"({analysis.category}, {result.source})")
        return analysis, build_notification(analysis)


def summarize_applications(analyses: Iterable[ResumeAnalysis]) -> Dict[str, Any]:
    """Dashboard counters for a candidate's or a job's analyses."""
    analyses = list(analyses)
    total = len(analyses)
    return {
        'total': total,
        'high_match': sum(1 for a in analyses if a.category == "High Match"),
        'potential': sum(1 for a in analyses if a.category == "Potential"),
        'rejected': sum(1 for a in analyses if a.category == "Reject"),
        'avg_score': sum(a.match_score for a in analyses) / (total or 1)
    }
