"""
AWS IAM Identity Center offboarding for exitops.

Removes every permission-set account assignment and Identity Store group
membership of an SSO user, and optionally deletes the identity. The user id
is resolved from the configured email when it is not given directly.
"""

import logging
from typing import List

from ..connectors.base_connector import CloudSSOConnector
from ..engine.gate import ExecutionContext
from ..exceptions import ConnectorError, EnumerationError
from ..models import Grant, GrantKind, GrantScope, Outcome, Principal, Provider
from .base_workflow import Action, GrantSource, ProviderModule, Revoker

logger = logging.getLogger(__name__)


class AWSSSOGrantSource(GrantSource):
    provider = Provider.AWS_SSO
    empty_category_messages = {
        GrantKind.PERMISSION_SET_ASSIGNMENT: "No permission set assignments found",
        GrantKind.SSO_GROUP_MEMBERSHIP: "No group memberships found",
    }

    def __init__(self, connector: CloudSSOConnector):
        self.connector = connector

    def resolve_user_id(self, principal: Principal, ctx: ExecutionContext) -> str:
        """
        Return the Identity Store user id of the principal.

        Raises:
            EnumerationError: If the id is not configured and the email does not resolve
        """
        if principal.sso_user_id:
            return principal.sso_user_id

        email = principal.sso_user_email
        if not email:
            raise EnumerationError(self.provider, "Cannot resolve SSO user: no user id or email configured")
        try:
            user_id = self.connector.resolve_user_id_by_email(email)
        except ConnectorError as e:
            raise self._enumeration_failed(f"users matching {email}", e) from e
        if not user_id:
            raise EnumerationError(self.provider, f"SSO user not found by email: {email}")

        ctx.record(self.provider.value, email, f"Resolved SSO User ID: {user_id}", Outcome.INFO)
        return user_id

    def scopes(self, principal: Principal, ctx: ExecutionContext) -> List[GrantScope]:
        if not principal.sso_user_id and not principal.sso_user_email:
            return []
        user_id = self.resolve_user_id(principal, ctx)
        scopes = []

        try:
            instance_arn = self.connector.get_instance_arn()
            for account_id in self.connector.list_accounts(instance_arn):
                for ps_arn in self.connector.list_permission_sets(instance_arn, account_id):
                    scopes.append(GrantScope(
                        provider=self.provider,
                        kind=GrantKind.PERMISSION_SET_ASSIGNMENT,
                        resource_id=f"{account_id}/{ps_arn}",
                        attributes={
                            "instance_arn": instance_arn,
                            "account_id": account_id,
                            "permission_set_arn": ps_arn,
                            "principal_id": user_id,
                        },
                    ))

            for membership in self.connector.list_group_memberships_for_member(user_id):
                scopes.append(GrantScope(
                    provider=self.provider,
                    kind=GrantKind.SSO_GROUP_MEMBERSHIP,
                    resource_id=membership["MembershipId"],
                    attributes={"group_id": membership.get("GroupId", ""), "principal_id": user_id},
                ))
        except ConnectorError as e:
            raise self._enumeration_failed(f"SSO assignments of {user_id}", e) from e

        scopes.append(GrantScope(provider=self.provider, kind=GrantKind.SSO_IDENTITY, resource_id=user_id,
                                 attributes={"principal_id": user_id}))
        return scopes

    def holds(self, principal: Principal, scope: GrantScope) -> bool:
        user_id = scope.attributes["principal_id"]
        if scope.kind == GrantKind.PERMISSION_SET_ASSIGNMENT:
            return bool(self.connector.list_account_assignments(
                scope.attributes["instance_arn"], scope.attributes["account_id"],
                scope.attributes["permission_set_arn"], user_id,
            ))
        if scope.kind == GrantKind.SSO_GROUP_MEMBERSHIP:
            return any(m["MembershipId"] == scope.resource_id
                       for m in self.connector.list_group_memberships_for_member(user_id))
        if scope.kind == GrantKind.SSO_IDENTITY:
            return self.connector.get_identity(user_id)
        raise ValueError(f"Unsupported SSO grant kind: {scope.kind}")


class AWSSSORevoker(Revoker):
    provider = Provider.AWS_SSO

    def __init__(self, connector: CloudSSOConnector):
        self.connector = connector

    def confirmation_message(self, grant: Grant) -> str:
        return f"Permanently delete SSO identity '{grant.resource_id}'. This cannot be undone."

    def actions(self, grant: Grant) -> List[Action]:
        attrs = grant.scope.attributes
        user_id = grant.principal_id

        if grant.kind == GrantKind.PERMISSION_SET_ASSIGNMENT:
            return [(
                f"Remove permission set {attrs['permission_set_arn']} from account {attrs['account_id']}",
                lambda: self.connector.delete_account_assignment(
                    attrs["instance_arn"], attrs["account_id"], attrs["permission_set_arn"], user_id),
            )]
        if grant.kind == GrantKind.SSO_GROUP_MEMBERSHIP:
            return [(f"Remove group membership: {grant.resource_id}",
                     lambda: self.connector.delete_group_membership(grant.resource_id))]
        if grant.kind == GrantKind.SSO_IDENTITY:
            return [(f"Hard-delete SSO user: {user_id}", lambda: self.connector.delete_identity(user_id))]
        raise ValueError(f"Unsupported SSO grant kind: {grant.kind}")


def aws_sso_module(connector: CloudSSOConnector) -> ProviderModule:
    return ProviderModule(AWSSSOGrantSource(connector), AWSSSORevoker(connector))
