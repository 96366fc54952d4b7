"""
AWS IAM Identity Center (SSO) Connector for exitops.

Covers permission-set account assignments (sso-admin) and directory group
memberships and users (identitystore) of one Identity Store.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Set, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import ConnectorError
from .aws_connector import NOT_FOUND_CODES, call_result, create_session, error_code, safe_paginate
from .base_connector import CloudSSOConnector, ConnectorResult, MockBackend

logger = logging.getLogger(__name__)


class AWSSSOConnector(CloudSSOConnector):
    """AWS SSO connector for removing permission-set assignments and group memberships."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, mock_mode: bool = False):
        super().__init__(config, mock_mode)

        self.identity_store_id = self.config.get("identity_store_id")
        if not self.identity_store_id:
            raise ValueError("Identity Store id is required")

        self.instance_arn = self.config.get("instance_arn")
        self.poll_attempts = int(self.config.get("poll_attempts", 10))
        self.poll_interval = float(self.config.get("poll_interval", 1.0))

        session = create_session(self.config)
        self.sso_admin_client = session.client("sso-admin")
        self.identitystore_client = session.client("identitystore")

    def check_credentials(self) -> Dict[str, Any]:
        """Confirm the Identity Store can be read with the current credentials."""
        try:
            self.identitystore_client.list_users(IdentityStoreId=self.identity_store_id, MaxResults=1)
        except (ClientError, BotoCoreError) as e:
            raise ConnectorError(f"Identity Store {self.identity_store_id} not readable: {e}") from e
        return {"identity_store_id": self.identity_store_id}

    def resolve_user_id_by_email(self, email: str) -> Optional[str]:
        users = list(safe_paginate(
            self.identitystore_client, "list_users", "Users",
            IdentityStoreId=self.identity_store_id,
            Filters=[{"AttributePath": "UserName", "AttributeValue": email}],
        ))
        if not users:
            return None
        user_id = users[0]["UserId"]
        logger.info(f"Resolved SSO user {email} to {user_id}")
        return user_id

    def get_instance_arn(self) -> str:
        if self.instance_arn:
            return self.instance_arn
        instances = list(safe_paginate(self.sso_admin_client, "list_instances", "Instances"))
        if not instances:
            raise ConnectorError("No SSO instance found")
        self.instance_arn = instances[0]["InstanceArn"]
        return self.instance_arn

    def list_accounts(self, instance_arn: str) -> List[str]:
        # Accounts are collected across every permission set of the instance.
        accounts: List[str] = []
        for ps_arn in safe_paginate(self.sso_admin_client, "list_permission_sets", "PermissionSets",
                                    InstanceArn=instance_arn):
            for account_id in safe_paginate(self.sso_admin_client,
                                            "list_accounts_for_provisioned_permission_set", "AccountIds",
                                            InstanceArn=instance_arn, PermissionSetArn=ps_arn):
                if account_id not in accounts:
                    accounts.append(account_id)
        return accounts

    def list_permission_sets(self, instance_arn: str, account_id: str) -> List[str]:
        return list(safe_paginate(self.sso_admin_client, "list_permission_sets_provisioned_to_account",
                                  "PermissionSets", InstanceArn=instance_arn, AccountId=account_id))

    def list_account_assignments(self, instance_arn: str, account_id: str,
                                 permission_set_arn: str, principal_id: str) -> List[Dict[str, str]]:
        return [
            assignment
            for assignment in safe_paginate(self.sso_admin_client, "list_account_assignments",
                                            "AccountAssignments", InstanceArn=instance_arn,
                                            AccountId=account_id, PermissionSetArn=permission_set_arn)
            if assignment.get("PrincipalId") == principal_id and assignment.get("PrincipalType") == "USER"
        ]

    def delete_account_assignment(self, instance_arn: str, account_id: str,
                                  permission_set_arn: str, principal_id: str) -> ConnectorResult:
        description = f"Delete assignment of {permission_set_arn} in {account_id}"
        result = call_result(description, self.sso_admin_client.delete_account_assignment,
                             InstanceArn=instance_arn, TargetId=account_id, TargetType="AWS_ACCOUNT",
                             PermissionSetArn=permission_set_arn, PrincipalType="USER",
                             PrincipalId=principal_id)
        if not result.success:
            return result
        status = result.data["AccountAssignmentDeletionStatus"]
        return self._wait_for_deletion(instance_arn, status, description)

    def _wait_for_deletion(self, instance_arn: str, status: Dict[str, Any], description: str) -> ConnectorResult:
        """Poll an asynchronous assignment deletion until it leaves IN_PROGRESS."""
        request_id = status.get("RequestId")
        for _ in range(self.poll_attempts):
            state = status.get("Status")
            if state == "SUCCEEDED":
                return ConnectorResult(True, description)
            if state == "FAILED":
                reason = status.get("FailureReason", "unknown reason")
                logger.error(f"{description} failed: {reason}")
                return ConnectorResult(False, f"{description} failed", error=reason)
            time.sleep(self.poll_interval)
            try:
                status = self.sso_admin_client.describe_account_assignment_deletion_status(
                    InstanceArn=instance_arn, AccountAssignmentDeletionRequestId=request_id,
                )["AccountAssignmentDeletionStatus"]
            except (ClientError, BotoCoreError) as e:
                return ConnectorResult(False, f"{description}: status unavailable", error=str(e))
        return ConnectorResult(False, f"{description} still in progress", error="timeout")

    def list_group_memberships_for_member(self, user_id: str) -> List[Dict[str, str]]:
        return [
            {"MembershipId": m["MembershipId"], "GroupId": m.get("GroupId", "")}
            for m in safe_paginate(self.identitystore_client, "list_group_memberships_for_member",
                                   "GroupMemberships", IdentityStoreId=self.identity_store_id,
                                   MemberId={"UserId": user_id})
        ]

    def delete_group_membership(self, membership_id: str) -> ConnectorResult:
        return call_result(f"Delete group membership {membership_id}",
                           self.identitystore_client.delete_group_membership,
                           IdentityStoreId=self.identity_store_id, MembershipId=membership_id)

    def get_identity(self, user_id: str) -> bool:
        try:
            self.identitystore_client.describe_user(IdentityStoreId=self.identity_store_id, UserId=user_id)
            return True
        except ClientError as e:
            if error_code(e) in NOT_FOUND_CODES:
                return False
            raise ConnectorError(f"Failed to describe SSO user {user_id}: {e}") from e
        except BotoCoreError as e:
            raise ConnectorError(f"Failed to describe SSO user {user_id}: {e}") from e

    def delete_identity(self, user_id: str) -> ConnectorResult:
        result = call_result(f"Delete SSO user {user_id}", self.identitystore_client.delete_user,
                             IdentityStoreId=self.identity_store_id, UserId=user_id)
        if result.success:
            logger.info(f"Deleted SSO identity: {user_id}")
        return result


class AWSSSOMockConnector(MockBackend, CloudSSOConnector):
    """Mock implementation of the AWS SSO connector for testing."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config, mock_mode=True)
        self._init_mock_state()
        self.identity_store_id = self.config.get("identity_store_id", "d-mock000000")
        self.instance_arn = self.config.get("instance_arn", "arn:aws:sso:::instance/ssoins-mock")

        self.users: Dict[str, str] = {}                      # user name / email -> user id
        self.identities: Set[str] = set()
        self.provisioned: Dict[str, List[str]] = {}          # account id -> permission set arns
        self.assignments: Set[Tuple[str, str, str]] = set()  # (account, permission set, user id)
        self.memberships: Dict[str, Tuple[str, str]] = {}    # membership id -> (group id, user id)

    def add_user(self, email: str, user_id: str) -> None:
        self.users[email] = user_id
        self.identities.add(user_id)

    def assign(self, account_id: str, permission_set_arn: str, user_id: str) -> None:
        permission_sets = self.provisioned.setdefault(account_id, [])
        if permission_set_arn not in permission_sets:
            permission_sets.append(permission_set_arn)
        self.assignments.add((account_id, permission_set_arn, user_id))

    def check_credentials(self) -> Dict[str, Any]:
        self._read("check_credentials")
        return {"identity_store_id": self.identity_store_id}

    def resolve_user_id_by_email(self, email: str) -> Optional[str]:
        self._read("resolve_user_id_by_email", email)
        return self.users.get(email)

    def get_instance_arn(self) -> str:
        self._read("get_instance_arn")
        return self.instance_arn

    def list_accounts(self, instance_arn: str) -> List[str]:
        self._read("list_accounts")
        return sorted(self.provisioned)

    def list_permission_sets(self, instance_arn: str, account_id: str) -> List[str]:
        self._read("list_permission_sets", account_id)
        return list(self.provisioned.get(account_id, []))

    def list_account_assignments(self, instance_arn: str, account_id: str,
                                 permission_set_arn: str, principal_id: str) -> List[Dict[str, str]]:
        self._read("list_account_assignments", f"{account_id}/{permission_set_arn}")
        if (account_id, permission_set_arn, principal_id) in self.assignments:
            return [{"AccountId": account_id, "PermissionSetArn": permission_set_arn,
                     "PrincipalId": principal_id, "PrincipalType": "USER"}]
        return []

    def delete_account_assignment(self, instance_arn: str, account_id: str,
                                  permission_set_arn: str, principal_id: str) -> ConnectorResult:
        key = (account_id, permission_set_arn, principal_id)
        return self._mutate("delete_account_assignment", f"{account_id}/{permission_set_arn}",
                            key in self.assignments, lambda: self.assignments.discard(key))

    def list_group_memberships_for_member(self, user_id: str) -> List[Dict[str, str]]:
        self._read("list_group_memberships_for_member", user_id)
        return [
            {"MembershipId": membership_id, "GroupId": group_id}
            for membership_id, (group_id, member) in sorted(self.memberships.items())
            if member == user_id
        ]

    def delete_group_membership(self, membership_id: str) -> ConnectorResult:
        return self._mutate("delete_group_membership", membership_id, membership_id in self.memberships,
                            lambda: self.memberships.pop(membership_id))

    def get_identity(self, user_id: str) -> bool:
        self._read("get_identity", user_id)
        return user_id in self.identities

    def delete_identity(self, user_id: str) -> ConnectorResult:
        return self._mutate("delete_identity", user_id, user_id in self.identities,
                            lambda: self.identities.discard(user_id))
