"""
Core data models for exitops.

This module defines the Pydantic models used throughout the system
for principals, grants, audit ledger records and run outcomes.
"""

from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Provider(str, Enum):
    """Identity/authorization providers a principal can be offboarded from."""
    GITHUB = "GITHUB"
    AWS_IAM = "AWS_IAM"
    AWS_SSO = "AWS_SSO"


class GrantKind(str, Enum):
    """Kinds of revocable access."""
    ORG_MEMBERSHIP = "org-membership"
    TEAM_MEMBERSHIP = "team-membership"
    REPO_COLLABORATOR = "repo-collaborator"
    SSO_CREDENTIAL = "sso-credential-authorization"
    ACCESS_KEY = "access-key"
    SIGNING_CERT = "signing-cert"
    LOGIN_PROFILE = "login-profile"
    ATTACHED_POLICY = "attached-policy"
    INLINE_POLICY = "inline-policy"
    GROUP_MEMBERSHIP = "group-membership"
    PERMISSION_SET_ASSIGNMENT = "permission-set-assignment"
    SSO_GROUP_MEMBERSHIP = "sso-group-membership"
    IAM_USER = "iam-user"
    SSO_IDENTITY = "sso-identity"


# Deleting these removes the identity itself rather than a single permission.
IDENTITY_KINDS = frozenset({GrantKind.IAM_USER, GrantKind.SSO_IDENTITY})


class GrantStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ABSENT = "ABSENT"


class Outcome(str, Enum):
    """Outcome tag of a ledger record."""
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    SIMULATED = "SIMULATED"
    INFO = "INFO"


class ModuleStatus(str, Enum):
    OK = "OK"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"
    ABORTED = "ABORTED"
    SKIPPED = "SKIPPED"


class ExitCode(IntEnum):
    """Process exit taxonomy. Every failure class has its own code."""
    SUCCESS = 0
    CONFIG_INVALID = 1
    PREFLIGHT_FAILED = 2
    GITHUB_FAILED = 10
    AWS_IAM_FAILED = 20
    AWS_SSO_FAILED = 30
    RESIDUAL_ACCESS = 99


MODULE_EXIT_CODES: Dict[Provider, ExitCode] = {
    Provider.GITHUB: ExitCode.GITHUB_FAILED,
    Provider.AWS_IAM: ExitCode.AWS_IAM_FAILED,
    Provider.AWS_SSO: ExitCode.AWS_SSO_FAILED,
}


class Principal(BaseModel):
    """The identity being offboarded, identified per provider."""
    model_config = ConfigDict(frozen=True)

    github_username: Optional[str] = Field(None, description="Source-control handle")
    iam_username: Optional[str] = Field(None, description="Cloud IAM user name")
    sso_user_id: Optional[str] = Field(None, description="Identity Store user id")
    sso_user_email: Optional[str] = Field(None, description="Used to resolve sso_user_id at runtime")

    def identifier_for(self, provider: Provider) -> Optional[str]:
        if provider == Provider.GITHUB:
            return self.github_username
        if provider == Provider.AWS_IAM:
            return self.iam_username
        return self.sso_user_id or self.sso_user_email

    def display_name(self) -> str:
        parts = [p for p in (self.github_username, self.iam_username,
                             self.sso_user_id or self.sso_user_email) if p]
        return " / ".join(parts) if parts else "N/A"


class GrantScope(BaseModel):
    """A place a principal could hold a grant (a team, a repo, a key id...)."""
    model_config = ConfigDict(frozen=True)

    provider: Provider
    kind: GrantKind
    resource_id: str
    attributes: Dict[str, str] = Field(default_factory=dict)

    @property
    def is_destructive(self) -> bool:
        return self.kind in IDENTITY_KINDS

    def __str__(self) -> str:
        return f"{self.provider.value}:{self.kind.value}:{self.resource_id}"


class Grant(BaseModel):
    """A single revocable unit of access, as observed at query time."""
    model_config = ConfigDict(frozen=True)

    scope: GrantScope
    principal_id: str
    status: GrantStatus = GrantStatus.ACTIVE

    @property
    def provider(self) -> Provider:
        return self.scope.provider

    @property
    def kind(self) -> GrantKind:
        return self.scope.kind

    @property
    def resource_id(self) -> str:
        return self.scope.resource_id

    @property
    def is_active(self) -> bool:
        return self.status == GrantStatus.ACTIVE


class ActionRecord(BaseModel):
    """One append-only ledger entry per attempted or simulated operation."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utcnow)
    run_id: Optional[str] = None
    module: str = Field(..., description="Provider module or phase name")
    target: str = Field(..., description="Grant resource or principal")
    message: str
    outcome: Outcome
    simulate: bool = False
    kind: Optional[GrantKind] = None
    resource_id: Optional[str] = None

    @model_validator(mode="after")
    def check_simulated_outcome(self) -> "ActionRecord":
        if self.simulate and self.outcome not in (Outcome.SIMULATED, Outcome.FAILURE):
            raise ValueError(
                f"Simulated records must be SIMULATED or FAILURE, got {self.outcome.value}"
            )
        return self


class RevokeResult(BaseModel):
    applied: bool = False
    outcome: Outcome
    message: str = ""


class GrantResult(BaseModel):
    """Outcome of processing one grant inside a provider module."""
    grant: Grant
    result: RevokeResult


class ModuleResult(BaseModel):
    provider: Provider
    status: ModuleStatus
    results: List[GrantResult] = Field(default_factory=list)
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def failed(self) -> bool:
        return self.status in (ModuleStatus.PARTIAL_FAILURE, ModuleStatus.ABORTED)

    @property
    def exit_code(self) -> ExitCode:
        return MODULE_EXIT_CODES[self.provider] if self.failed else ExitCode.SUCCESS

    def count(self, outcome: Outcome) -> int:
        return len([r for r in self.results if r.result.outcome == outcome])


class ResidualFinding(BaseModel):
    """A grant still ACTIVE after revocation was believed complete."""
    grant: Grant
    message: str


class VerificationReport(BaseModel):
    principal: Principal
    findings: List[ResidualFinding] = Field(default_factory=list)
    incomplete: List[Provider] = Field(default_factory=list)
    checked: List[Provider] = Field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.findings and not self.incomplete

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.SUCCESS if self.clean else ExitCode.RESIDUAL_ACCESS


class RunOutcome(BaseModel):
    """Aggregate of one offboarding run."""
    run_id: str
    principal: Optional[Principal] = None
    simulate: bool = False
    modules: List[ModuleResult] = Field(default_factory=list)
    verification: Optional[VerificationReport] = None
    exit_code: ExitCode = ExitCode.SUCCESS
    errors: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def verified(self) -> bool:
        return self.verification is not None

    def escalate(self, code: ExitCode) -> ExitCode:
        """Keep the first non-zero code; later codes never replace it."""
        if self.exit_code == ExitCode.SUCCESS and code != ExitCode.SUCCESS:
            self.exit_code = code
        return self.exit_code
