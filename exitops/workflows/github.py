"""
GitHub offboarding for exitops.

Removes the principal from the organization, from every team, as a
collaborator from every organization repository, and revokes the SAML SSO
credential authorizations they hold.
"""

import logging
from typing import List

from ..connectors.base_connector import SourceControlConnector
from ..engine.gate import ExecutionContext
from ..exceptions import ConnectorError
from ..models import Grant, GrantKind, GrantScope, Principal, Provider
from .base_workflow import Action, GrantSource, ProviderModule, Revoker
from .helpers import DEFAULT_PAGE_SIZE, paginate

logger = logging.getLogger(__name__)


class GitHubGrantSource(GrantSource):
    provider = Provider.GITHUB
    empty_category_messages = {
        GrantKind.ORG_MEMBERSHIP: "No org membership found (personal repo) - continuing",
        GrantKind.SSO_CREDENTIAL: "No active SSO credentials found",
    }

    def __init__(self, connector: SourceControlConnector, per_page: int = DEFAULT_PAGE_SIZE):
        self.connector = connector
        self.per_page = per_page

    def scopes(self, principal: Principal, ctx: ExecutionContext) -> List[GrantScope]:
        user = principal.github_username
        if not user:
            return []
        org = self.connector.org_name

        scopes = [GrantScope(provider=self.provider, kind=GrantKind.ORG_MEMBERSHIP, resource_id=org)]

        try:
            teams = paginate(self.connector.list_teams_page, self.per_page)
        except ConnectorError as e:
            raise self._enumeration_failed(f"teams of {org}", e) from e
        scopes.extend(GrantScope(provider=self.provider, kind=GrantKind.TEAM_MEMBERSHIP, resource_id=team)
                      for team in teams)

        try:
            repos = paginate(self.connector.list_org_repos_page, self.per_page)
        except ConnectorError as e:
            raise self._enumeration_failed(f"repositories of {org}", e) from e
        scopes.extend(GrantScope(provider=self.provider, kind=GrantKind.REPO_COLLABORATOR, resource_id=repo)
                      for repo in repos)

        try:
            credentials = self.connector.list_sso_credential_authorizations()
        except ConnectorError as e:
            raise self._enumeration_failed(f"SSO credential authorizations of {org}", e) from e
        scopes.extend(
            GrantScope(provider=self.provider, kind=GrantKind.SSO_CREDENTIAL, resource_id=c["credential_id"])
            for c in credentials
            if c["login"].lower() == user.lower()
        )

        logger.info(f"[GITHUB] Enumerated {len(teams)} team(s), {len(repos)} repo(s) in {org}")
        return scopes

    def holds(self, principal: Principal, scope: GrantScope) -> bool:
        user = principal.github_username
        if scope.kind == GrantKind.ORG_MEMBERSHIP:
            return self.connector.get_org_membership(user)
        if scope.kind == GrantKind.TEAM_MEMBERSHIP:
            return self.connector.get_team_membership(scope.resource_id, user)
        if scope.kind == GrantKind.REPO_COLLABORATOR:
            return self.connector.get_repo_collaborator(scope.resource_id, user)
        if scope.kind == GrantKind.SSO_CREDENTIAL:
            return any(c["credential_id"] == scope.resource_id
                       for c in self.connector.list_sso_credential_authorizations())
        raise ValueError(f"Unsupported GitHub grant kind: {scope.kind}")


class GitHubRevoker(Revoker):
    provider = Provider.GITHUB

    def __init__(self, connector: SourceControlConnector):
        self.connector = connector

    def actions(self, grant: Grant) -> List[Action]:
        user = grant.principal_id
        resource = grant.resource_id
        if grant.kind == GrantKind.ORG_MEMBERSHIP:
            return [(f"Removed from GitHub org: {resource}",
                     lambda: self.connector.remove_org_member(user))]
        if grant.kind == GrantKind.TEAM_MEMBERSHIP:
            return [(f"Removed from team: {resource}",
                     lambda: self.connector.remove_team_member(resource, user))]
        if grant.kind == GrantKind.REPO_COLLABORATOR:
            return [(f"Removed collaborator access from repo: {resource}",
                     lambda: self.connector.remove_repo_collaborator(resource, user))]
        if grant.kind == GrantKind.SSO_CREDENTIAL:
            return [(f"Revoked SSO credential: {resource}",
                     lambda: self.connector.revoke_sso_credential(resource))]
        raise ValueError(f"Unsupported GitHub grant kind: {grant.kind}")


def github_module(connector: SourceControlConnector, per_page: int = DEFAULT_PAGE_SIZE) -> ProviderModule:
    return ProviderModule(GitHubGrantSource(connector, per_page), GitHubRevoker(connector))
