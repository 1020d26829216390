"""
User Profile Data Models
"""

from typing import Any, List, Mapping

from pydantic import BaseModel, ConfigDict, Field

NOT_SPECIFIED = "Not specified"


def _split_interests(value: Any) -> List[str]:
    """Accept either a comma-separated string or a list of interests."""
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class UserProfile(BaseModel):
    """Intake answers used to build generation prompts.

    Frozen: a profile handed to the coordinator is never mutated.
    """

    model_config = ConfigDict(frozen=True)

    name: str = "User"
    email: str = ""
    experience_level: str = NOT_SPECIFIED
    study_field: str = NOT_SPECIFIED
    education_level: str = NOT_SPECIFIED
    current_role: str = NOT_SPECIFIED
    years_experience: str = NOT_SPECIFIED
    job_responsibilities: str = NOT_SPECIFIED
    job_projects: str = NOT_SPECIFIED
    job_technologies: str = NOT_SPECIFIED
    publications: str = NOT_SPECIFIED
    transferable_skills: str = NOT_SPECIFIED
    interests: List[str] = Field(default_factory=list)
    career_paths_interest: List[str] = Field(default_factory=list)
    tools_used: List[str] = Field(default_factory=list)
    time_commitment: str = ""
    target_salary: str = ""
    work_preference: str = ""
    transition_timeline: str = ""

    @classmethod
    def from_intake(
        cls, form: Mapping[str, Any], fallback_name: str = "User"
    ) -> "UserProfile":
        """Build a profile from raw intake-form answers.

        Blank descriptive answers become "Not specified" and a comma-separated
        ``techInterests`` string is split into a list.

        Args:
            form: Intake answers keyed by the form's camelCase field names
            fallback_name: Display name used when the form has no fullName

        Returns:
            UserProfile
        """

        def text(key: str, default: str = NOT_SPECIFIED) -> str:
            value = form.get(key)
            return str(value).strip() if value else default

        return cls(
            name=text("fullName", fallback_name),
            email=text("email", ""),
            experience_level=text("experienceLevel"),
            study_field=text("studyField"),
            education_level=text("educationLevel"),
            current_role=text("currentRole"),
            years_experience=text("yearsExperience"),
            job_responsibilities=text("jobResponsibilities"),
            job_projects=text("jobProjects"),
            job_technologies=text("jobTechnologies"),
            publications=text("publications"),
            transferable_skills=text("transferableSkills"),
            interests=_split_interests(form.get("techInterests")),
            career_paths_interest=_split_interests(form.get("careerPathsInterest")),
            tools_used=_split_interests(form.get("toolsUsed")),
            time_commitment=text("timeCommitment", ""),
            target_salary=text("targetSalary", ""),
            work_preference=text("workPreference", ""),
            transition_timeline=text("transitionTimeline", ""),
        )
