"""
Input validation schemas using Pydantic v2
Validates problem payloads, session settings and identifiers
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = {
    "javascript",
    "python",
    "java",
    "cpp",
    "c",
    "typescript",
    "go",
}


# ==================== PROBLEM SOURCE ====================


class ProblemExample(BaseModel):
    """One worked example shown next to the problem statement"""

    input: str = ""
    output: str = ""
    explanation: Optional[str] = None

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class ProblemData(BaseModel):
    """Problem as supplied by the problem source (read-only for the controller)"""

    id: Optional[str] = Field(None, alias="_id", description="Problem ID")
    title: str = Field(..., min_length=1, max_length=255)
    difficulty: str = Field("Medium", max_length=20)
    description: str = ""
    examples: List[ProblemExample] = Field(default_factory=list)
    constraints: str = ""
    tags: List[str] = Field(default_factory=list)
    functionSignature: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Title must not be blank"""
        v = v.strip()
        if not v:
            raise ValueError("title cannot be empty")
        return v

    @field_validator("constraints", mode="before")
    @classmethod
    def join_constraints(cls, v: Any) -> Any:
        """Some problem sources send constraints as a list"""
        if isinstance(v, list):
            return ", ".join(str(item) for item in v)
        if v is None:
            return ""
        return v

    @field_validator("functionSignature", mode="before")
    @classmethod
    def validate_signatures(cls, v: Any) -> Dict[str, str]:
        """Drop non-string templates instead of failing the whole problem"""
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("functionSignature must be a mapping of language to template")
        return {str(lang): tpl for lang, tpl in v.items() if isinstance(tpl, str)}

    def template_for(self, language: str) -> str:
        return self.functionSignature.get(language, "")

    @classmethod
    def from_source(cls, data: Any) -> "ProblemData":
        """
        Validate a problem payload

        Returns:
            ProblemData: Validated problem

        Raises:
            ValueError: If the payload is missing or invalid
        """
        if isinstance(data, ProblemData):
            return data
        if not isinstance(data, Mapping):
            raise ValueError("problem data is missing")
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            logger.warning(f"Problem validation failed: {e}")
            raise ValueError(f"Invalid problem: {str(e)}")


# ==================== SETTINGS ====================


class SessionSettings(BaseModel):
    """Tunable timings and identity for a SessionController"""

    debounce_seconds: float = Field(
        2.0, gt=0, le=60, description="Delay before a code edit is persisted"
    )
    tick_seconds: float = Field(
        1.0, gt=0, le=60, description="Deadline timer resolution"
    )
    default_time_limit_seconds: int = Field(
        600, ge=1, le=86400, description="Solo countdown length (10 minutes)"
    )
    timer_enabled_by_default: bool = True

    # Redirect delays after terminal actions
    contest_redirect_seconds: float = Field(2.0, ge=0, le=60)
    match_redirect_seconds: float = Field(2.0, ge=0, le=60)
    give_up_redirect_seconds: float = Field(1.5, ge=0, le=60)

    probe_case_index: int = Field(0, ge=0, le=999)

    # Local player identity, used on the match channel
    user_id: Optional[str] = Field(None, min_length=1, max_length=64)
    username: Optional[str] = Field(None, min_length=1, max_length=64)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def validate_identity(self) -> Self:
        """A username without a user id cannot be filtered on the channel"""
        if self.username is not None and self.user_id is None:
            raise ValueError("username requires user_id")
        return self

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]] = None) -> "SessionSettings":
        """
        Validate settings loaded by the host application

        Raises:
            ValueError: If validation fails
        """
        try:
            return cls.model_validate(dict(data or {}))
        except ValidationError as e:
            logger.warning(f"Settings validation failed: {e}")
            raise ValueError(f"Invalid settings: {str(e)}")


class InputSanitizer:
    """Utility class for input sanitization"""

    @staticmethod
    def sanitize_string(value: str, max_length: int = 255) -> str:
        """Sanitize string input"""
        if not isinstance(value, str):
            return str(value)[:max_length]

        # Strip whitespace
        value = value.strip()

        # Limit length
        value = value[:max_length]

        # Remove null bytes
        value = value.replace("\0", "")

        return value

    @staticmethod
    def sanitize_identifier(value: Any) -> str:
        """Sanitize problem/match/contest IDs used in keys and URLs"""
        value = InputSanitizer.sanitize_string(value, 64)
        if not value:
            raise ValueError("identifier cannot be empty")
        if "/" in value or ":" in value:
            raise ValueError(f"identifier contains a reserved character: {value!r}")
        return value

    @staticmethod
    def sanitize_language(language: Any) -> str:
        """Normalize a language name, rejecting unknown ones"""
        value = InputSanitizer.sanitize_string(language, 20).lower()
        if value not in SUPPORTED_LANGUAGES:
            raise ValueError(f"language must be one of {sorted(SUPPORTED_LANGUAGES)}, got {value!r}")
        return value


# ==================== EXPORT ====================

__all__ = [
    "ProblemData",
    "ProblemExample",
    "SessionSettings",
    "InputSanitizer",
    "SUPPORTED_LANGUAGES",
]
