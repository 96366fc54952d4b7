"""
Base Connector Classes for exitops.

This module defines the provider capabilities the offboarding engine calls:
one interface per provider (source control, cloud IAM, cloud SSO), each with
a real API implementation and an in-memory mock backend.

Read operations return plain data and raise ConnectorError when the provider
cannot be queried. Mutating operations return a ConnectorResult.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..exceptions import ConnectorError

logger = logging.getLogger(__name__)


class ConnectorResult:
    """Result of a mutating connector operation."""

    def __init__(self, success: bool, message: str = "", data: Optional[Any] = None,
                 error: Optional[str] = None, not_found: bool = False):
        self.success = success
        self.message = message
        self.data = data
        self.error = error
        self.not_found = not_found

    @classmethod
    def absent(cls, message: str) -> "ConnectorResult":
        """The target of the call no longer exists at the provider."""
        return cls(False, message, not_found=True)

    def __bool__(self):
        return self.success

    def __str__(self):
        return f"{'✓' if self.success else '✗'} {self.message}"


class BaseConnector(ABC):
    """Common base for all provider connectors."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, mock_mode: bool = False):
        """
        Initialize the connector.

        Args:
            config: Provider settings (credentials, organization, region, etc.)
            mock_mode: True for the in-memory backends
        """
        self.config = config or {}
        self.mock_mode = mock_mode

        logger.info(f"Initialized {self.__class__.__name__} (mock_mode={mock_mode})")

    @abstractmethod
    def check_credentials(self) -> Dict[str, Any]:
        """
        Confirm the configured credentials can reach the provider.

        Returns:
            Description of the authenticated caller

        Raises:
            ConnectorError: If the credentials are unusable
        """
        pass


class SourceControlConnector(BaseConnector):
    """Organization, team, repository and SAML SSO access on a source-control platform."""

    org_name: str = ""

    @abstractmethod
    def get_org_membership(self, user: str) -> bool:
        """True if ``user`` is a member of the organization."""
        pass

    @abstractmethod
    def list_teams_page(self, page: int, per_page: int) -> List[str]:
        """
        List one page of team slugs in the organization.

        Args:
            page: Zero-based page index
            per_page: Page size

        Returns:
            Team slugs; fewer than ``per_page`` entries marks the last page
        """
        pass

    @abstractmethod
    def get_team_membership(self, team: str, user: str) -> bool:
        pass

    @abstractmethod
    def remove_org_member(self, user: str) -> ConnectorResult:
        pass

    @abstractmethod
    def remove_team_member(self, team: str, user: str) -> ConnectorResult:
        pass

    @abstractmethod
    def list_org_repos_page(self, page: int, per_page: int) -> List[str]:
        """List one page of repository names owned by the organization."""
        pass

    @abstractmethod
    def get_repo_collaborator(self, repo: str, user: str) -> bool:
        pass

    @abstractmethod
    def remove_repo_collaborator(self, repo: str, user: str) -> ConnectorResult:
        pass

    @abstractmethod
    def list_sso_credential_authorizations(self) -> List[Dict[str, str]]:
        """
        List SAML SSO credential authorizations in the organization.

        Returns:
            Dicts with ``login`` and ``credential_id`` keys
        """
        pass

    @abstractmethod
    def revoke_sso_credential(self, credential_id: str) -> ConnectorResult:
        pass


class CloudIAMConnector(BaseConnector):
    """Credentials, policies and groups of a cloud IAM user."""

    @abstractmethod
    def get_user(self, user: str) -> Optional[Dict[str, Any]]:
        """Return the user record, or None if the user does not exist."""
        pass

    @abstractmethod
    def list_access_keys(self, user: str) -> List[Dict[str, str]]:
        """Access key metadata dicts with ``AccessKeyId`` and ``Status``."""
        pass

    @abstractmethod
    def deactivate_access_key(self, user: str, key_id: str) -> ConnectorResult:
        pass

    @abstractmethod
    def delete_access_key(self, user: str, key_id: str) -> ConnectorResult:
        pass

    @abstractmethod
    def list_signing_certs(self, user: str) -> List[str]:
        pass

    @abstractmethod
    def delete_signing_cert(self, user: str, cert_id: str) -> ConnectorResult:
        pass

    @abstractmethod
    def get_login_profile(self, user: str) -> bool:
        """True if the user has console access."""
        pass

    @abstractmethod
    def delete_login_profile(self, user: str) -> ConnectorResult:
        pass

    @abstractmethod
    def list_attached_policies(self, user: str) -> List[str]:
        """Managed policy ARNs attached directly to the user."""
        pass

    @abstractmethod
    def detach_policy(self, user: str, policy_arn: str) -> ConnectorResult:
        pass

    @abstractmethod
    def list_inline_policies(self, user: str) -> List[str]:
        pass

    @abstractmethod
    def delete_inline_policy(self, user: str, policy_name: str) -> ConnectorResult:
        pass

    @abstractmethod
    def list_groups_for_user(self, user: str) -> List[str]:
        pass

    @abstractmethod
    def remove_user_from_group(self, user: str, group: str) -> ConnectorResult:
        pass

    @abstractmethod
    def list_user_tags(self, user: str) -> List[str]:
        """Tag keys set on the user."""
        pass

    @abstractmethod
    def untag_user(self, user: str, tag_keys: List[str]) -> ConnectorResult:
        pass

    @abstractmethod
    def delete_user(self, user: str) -> ConnectorResult:
        pass


class CloudSSOConnector(BaseConnector):
    """Permission-set assignments and directory group memberships of an SSO identity."""

    @abstractmethod
    def resolve_user_id_by_email(self, email: str) -> Optional[str]:
        """Look up the directory user id for a user name / email, None if unknown."""
        pass

    @abstractmethod
    def get_instance_arn(self) -> str:
        """
        ARN of the SSO instance.

        Raises:
            ConnectorError: If no instance is available
        """
        pass

    @abstractmethod
    def list_accounts(self, instance_arn: str) -> List[str]:
        """Account ids that have at least one permission set provisioned."""
        pass

    @abstractmethod
    def list_permission_sets(self, instance_arn: str, account_id: str) -> List[str]:
        """Permission set ARNs provisioned to ``account_id``."""
        pass

    @abstractmethod
    def list_account_assignments(self, instance_arn: str, account_id: str,
                                 permission_set_arn: str, principal_id: str) -> List[Dict[str, str]]:
        """Assignments of ``permission_set_arn`` in ``account_id`` held by user ``principal_id``."""
        pass

    @abstractmethod
    def delete_account_assignment(self, instance_arn: str, account_id: str,
                                  permission_set_arn: str, principal_id: str) -> ConnectorResult:
        pass

    @abstractmethod
    def list_group_memberships_for_member(self, user_id: str) -> List[Dict[str, str]]:
        """Membership dicts with ``MembershipId`` and ``GroupId``."""
        pass

    @abstractmethod
    def delete_group_membership(self, membership_id: str) -> ConnectorResult:
        pass

    @abstractmethod
    def get_identity(self, user_id: str) -> bool:
        """True if the directory user exists."""
        pass

    @abstractmethod
    def delete_identity(self, user_id: str) -> ConnectorResult:
        pass


class MockBackend:
    """
    In-memory provider behaviour shared by the mock connectors.

    Records every read and mutation, and lets tests inject provider errors
    (``fail_on``), deletes that report success but change nothing
    (``noop_on``) and unreachable list endpoints (``unreachable``).
    """

    def _init_mock_state(self):
        self.reads: List[Tuple[str, str]] = []
        self.mutations: List[Tuple[str, str]] = []
        self.fail_on: Set[Tuple[str, str]] = set()
        self.noop_on: Set[Tuple[str, str]] = set()
        self.unreachable: Set[str] = set()

    def _read(self, operation: str, resource: str = "") -> None:
        self.reads.append((operation, resource))
        if operation in self.unreachable:
            raise ConnectorError(f"{operation}: provider unreachable", status=503)

    def _mutate(self, operation: str, resource: str, exists: bool,
                apply: Callable[[], None]) -> ConnectorResult:
        self.mutations.append((operation, resource))
        if (operation, resource) in self.fail_on:
            return ConnectorResult(False, f"{operation} {resource} failed", error="HTTP 500")
        if not exists:
            return ConnectorResult.absent(f"{resource} not found")
        if (operation, resource) not in self.noop_on:
            apply()
        logger.info(f"Mock {operation}: {resource}")
        return ConnectorResult(True, f"{operation} {resource}")
