"""
Shared fixtures for the exitops test suite.

Provider state is held by the in-memory mock connectors; the standard
scenario is principal ``alice`` in GitHub organization ``acme``.
"""

import pytest

from exitops.audit import AuditLogger
from exitops.connectors import AWSIAMMockConnector, AWSSSOMockConnector, GitHubMockConnector
from exitops.engine.config_loader import GitHubSettings, IAMSettings, OffboardConfig, SSOSettings
from exitops.engine.gate import ExecutionContext, StaticConfirmer
from exitops.models import Principal, Provider


@pytest.fixture
def audit():
    """In-memory audit sink."""
    return AuditLogger()


@pytest.fixture
def execute_ctx(audit):
    return ExecutionContext(audit=audit)


@pytest.fixture
def simulate_ctx(audit):
    return ExecutionContext(audit=audit, simulate=True)


@pytest.fixture
def github():
    """alice in acme: org member, two teams, one repository."""
    connector = GitHubMockConnector({"organization": "acme"})
    connector.members.update({"alice", "bob"})
    connector.teams.update({
        "backend": {"alice", "bob"},
        "platform": {"alice"},
        "design": {"carol"},
    })
    connector.repos.update({
        "api": {"alice"},
        "web": {"bob"},
    })
    return connector


@pytest.fixture
def iam():
    connector = AWSIAMMockConnector({"account_id": "111122223333"})
    connector.add_user(
        "alice",
        access_keys={"AKIAALICE1": "Active", "AKIAALICE2": "Inactive"},
        signing_certs=["CERT1"],
        login_profile=True,
        attached_policies=["arn:aws:iam::aws:policy/ReadOnlyAccess"],
        inline_policies=["alice-s3"],
        groups=["developers"],
        tags=["team", "cost-center"],
    )
    return connector


@pytest.fixture
def sso():
    connector = AWSSSOMockConnector()
    connector.add_user("alice@acme.example", "u-alice")
    connector.assign("111122223333", "arn:aws:sso:::permissionSet/ssoins-mock/ps-admin", "u-alice")
    connector.assign("444455556666", "arn:aws:sso:::permissionSet/ssoins-mock/ps-read", "u-alice")
    connector.assign("444455556666", "arn:aws:sso:::permissionSet/ssoins-mock/ps-read", "u-bob")
    connector.memberships.update({
        "m-1": ("g-engineering", "u-alice"),
        "m-2": ("g-engineering", "u-bob"),
    })
    return connector


@pytest.fixture
def alice():
    return Principal(github_username="alice", iam_username="alice", sso_user_email="alice@acme.example")


@pytest.fixture
def github_only_config():
    return OffboardConfig(
        github=GitHubSettings(token="ghp_test", org="acme", username="alice"),
        ledger_path=None,
    )


@pytest.fixture
def full_config():
    return OffboardConfig(
        github=GitHubSettings(token="ghp_test", org="acme", username="alice"),
        iam=IAMSettings(enabled=True, username="alice"),
        sso=SSOSettings(enabled=True, identity_store_id="d-mock000000", user_email="alice@acme.example"),
        ledger_path=None,
    )


@pytest.fixture
def connectors(github, iam, sso):
    return {Provider.GITHUB: github, Provider.AWS_IAM: iam, Provider.AWS_SSO: sso}


@pytest.fixture
def refuse():
    return StaticConfirmer(False)


@pytest.fixture
def approve():
    return StaticConfirmer(True)
