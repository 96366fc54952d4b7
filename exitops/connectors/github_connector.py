"""
GitHub Connector for exitops.

Provides organization membership, team membership, repository collaborator
and SAML SSO credential authorization access for one GitHub organization.
"""

import logging
from typing import Any, Dict, List, Optional, Set

import requests
from github import Auth, Github, GithubException, UnknownObjectException
from github.NamedUser import NamedUser

from ..exceptions import ConnectorError
from .base_connector import ConnectorResult, MockBackend, SourceControlConnector

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"

# PyGithub surfaces HTTP errors as GithubException and transport errors as requests exceptions.
API_ERRORS = (GithubException, requests.RequestException)


def error_status(error: Exception) -> Optional[int]:
    return getattr(error, "status", None)


def failure_code(error: Exception) -> str:
    status = error_status(error)
    return f"HTTP {status}" if status is not None else type(error).__name__


class GitHubConnector(SourceControlConnector):
    """GitHub connector for removing a user from one organization."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, mock_mode: bool = False):
        super().__init__(config, mock_mode)

        token = self.config.get('token') or self.config.get('github_token')
        if not token:
            raise ValueError("GitHub token is required")

        self.org_name = self.config.get('organization') or self.config.get('org')
        if not self.org_name:
            raise ValueError("GitHub organization name is required")

        self.api_url = (self.config.get('api_url') or DEFAULT_API_URL).rstrip('/')
        self.per_page = int(self.config.get('per_page', 100))
        self.github = Github(auth=Auth.Token(token), base_url=self.api_url, per_page=self.per_page)

        # Credential authorizations are not covered by PyGithub.
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github+json",
        })
        self.timeout = self.config.get('timeout', 30)

        self._org = None
        # Login -> account lookups only. Grant state is always re-read from the API.
        self._users: Dict[str, Optional[NamedUser]] = {}

    @property
    def org(self):
        if self._org is None:
            try:
                self._org = self.github.get_organization(self.org_name)
            except API_ERRORS as e:
                raise ConnectorError(f"Failed to access GitHub organization {self.org_name}: {e}",
                                     status=error_status(e)) from e
        return self._org

    def _named_user(self, login: str) -> Optional[NamedUser]:
        """Resolve a login to a NamedUser, None if the account does not exist."""
        if login not in self._users:
            try:
                self._users[login] = self.github.get_user(login)
            except UnknownObjectException:
                logger.warning(f"GitHub user {login} does not exist")
                self._users[login] = None
            except API_ERRORS as e:
                raise ConnectorError(f"Failed to look up GitHub user {login}: {e}",
                                     status=error_status(e)) from e
        return self._users[login]

    def _page(self, paginated, page: int, per_page: int) -> list:
        """Fetch one zero-based page of ``per_page`` items from a PaginatedList."""
        if per_page == self.per_page:
            return list(paginated.get_page(page))
        return list(paginated[page * per_page:(page + 1) * per_page])

    def _failure(self, message: str, error: Exception) -> ConnectorResult:
        error_msg = f"{message}: {error}"
        logger.error(error_msg)
        return ConnectorResult(False, error_msg, error=failure_code(error))

    def check_credentials(self) -> Dict[str, Any]:
        """Authenticate the token and confirm the organization is reachable."""
        try:
            me = self.github.get_user()
            login = me.login
        except API_ERRORS as e:
            raise ConnectorError(f"GitHub token rejected: {e}", status=error_status(e)) from e

        org = self.org
        return {"login": login, "organization": org.login}

    def get_org_membership(self, user: str) -> bool:
        named = self._named_user(user)
        if named is None:
            return False
        try:
            return self.org.has_in_members(named)
        except UnknownObjectException:
            return False
        except API_ERRORS as e:
            raise ConnectorError(f"Failed to check org membership of {user}: {e}",
                                 status=error_status(e)) from e

    def list_teams_page(self, page: int, per_page: int) -> List[str]:
        try:
            return [team.slug for team in self._page(self.org.get_teams(), page, per_page)]
        except API_ERRORS as e:
            raise ConnectorError(f"Failed to list teams of {self.org_name}: {e}",
                                 status=error_status(e)) from e

    def get_team_membership(self, team: str, user: str) -> bool:
        named = self._named_user(user)
        if named is None:
            return False
        try:
            return self.org.get_team_by_slug(team).has_in_members(named)
        except UnknownObjectException:
            return False
        except API_ERRORS as e:
            raise ConnectorError(f"Failed to check membership of {user} in team {team}: {e}",
                                 status=error_status(e)) from e

    def remove_org_member(self, user: str) -> ConnectorResult:
        try:
            named = self._named_user(user)
            if named is None:
                return ConnectorResult.absent(f"GitHub user {user} not found")
            self.org.remove_from_members(named)
            logger.info(f"Removed {user} from GitHub organization {self.org_name}")
            return ConnectorResult(True, f"Removed {user} from GitHub organization")
        except UnknownObjectException:
            return ConnectorResult.absent(f"{user} is not a member of {self.org_name}")
        except (ConnectorError, GithubException, requests.RequestException) as e:
            return self._failure(f"Failed to remove {user} from GitHub organization", e)

    def remove_team_member(self, team: str, user: str) -> ConnectorResult:
        try:
            named = self._named_user(user)
            if named is None:
                return ConnectorResult.absent(f"GitHub user {user} not found")
            self.org.get_team_by_slug(team).remove_membership(named)
            logger.info(f"Removed {user} from GitHub team {team}")
            return ConnectorResult(True, f"Removed {user} from team {team}")
        except UnknownObjectException:
            return ConnectorResult.absent(f"{user} is not a member of team {team}")
        except (ConnectorError, GithubException, requests.RequestException) as e:
            return self._failure(f"Failed to remove {user} from team {team}", e)

    def list_org_repos_page(self, page: int, per_page: int) -> List[str]:
        try:
            return [repo.name for repo in self._page(self.org.get_repos(type="all"), page, per_page)]
        except API_ERRORS as e:
            raise ConnectorError(f"Failed to list repositories of {self.org_name}: {e}",
                                 status=error_status(e)) from e

    def get_repo_collaborator(self, repo: str, user: str) -> bool:
        try:
            return self.github.get_repo(f"{self.org_name}/{repo}").has_in_collaborators(user)
        except UnknownObjectException:
            return False
        except API_ERRORS as e:
            raise ConnectorError(f"Failed to check collaborator {user} on {repo}: {e}",
                                 status=error_status(e)) from e

    def remove_repo_collaborator(self, repo: str, user: str) -> ConnectorResult:
        try:
            self.github.get_repo(f"{self.org_name}/{repo}").remove_from_collaborators(user)
            logger.info(f"Removed {user} as collaborator from {repo}")
            return ConnectorResult(True, f"Removed collaborator access from repo: {repo}")
        except UnknownObjectException:
            return ConnectorResult.absent(f"{user} is not a collaborator on {repo}")
        except API_ERRORS as e:
            return self._failure(f"Failed to remove collaborator {user} from {repo}", e)

    def list_sso_credential_authorizations(self) -> List[Dict[str, str]]:
        url = f"{self.api_url}/orgs/{self.org_name}/credential-authorizations"
        authorizations: List[Dict[str, str]] = []
        page = 1
        while True:
            try:
                response = self.session.get(url, params={"per_page": 100, "page": page},
                                            timeout=self.timeout)
            except requests.RequestException as e:
                raise ConnectorError(f"Failed to list SSO credential authorizations: {e}") from e
            if response.status_code == 404:
                # Organizations without SAML SSO have no credential authorizations.
                return []
            if response.status_code != 200:
                raise ConnectorError(
                    f"Failed to list SSO credential authorizations (HTTP {response.status_code})",
                    status=response.status_code,
                )
            batch = response.json()
            authorizations.extend(
                {"login": item.get("login", ""), "credential_id": str(item.get("credential_id"))}
                for item in batch
            )
            if len(batch) < 100:
                return authorizations
            page += 1

    def revoke_sso_credential(self, credential_id: str) -> ConnectorResult:
        url = f"{self.api_url}/orgs/{self.org_name}/credential-authorizations/{credential_id}"
        try:
            response = self.session.delete(url, timeout=self.timeout)
        except requests.RequestException as e:
            return ConnectorResult(False, f"Failed to revoke SSO credential {credential_id}", error=str(e))

        if response.status_code == 204:
            logger.info(f"Revoked SSO credential {credential_id} in {self.org_name}")
            return ConnectorResult(True, f"Revoked SSO credential: {credential_id}")
        if response.status_code == 404:
            return ConnectorResult.absent(f"SSO credential {credential_id} not found")
        return ConnectorResult(False, f"Failed to revoke SSO credential {credential_id}",
                               error=f"HTTP {response.status_code}")


class GitHubMockConnector(MockBackend, SourceControlConnector):
    """Mock implementation of the GitHub connector for testing."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config, mock_mode=True)
        self._init_mock_state()
        self.org_name = self.config.get('organization', 'mock-org')

        # GitHub-specific mock state
        self.members: Set[str] = set()
        self.teams: Dict[str, Set[str]] = {}          # team slug -> member logins
        self.repos: Dict[str, Set[str]] = {}          # repo name -> collaborator logins
        self.credentials: List[Dict[str, str]] = []   # {"login", "credential_id"}

    def check_credentials(self) -> Dict[str, Any]:
        self._read("check_credentials")
        return {"login": "mock-admin", "organization": self.org_name}

    def get_org_membership(self, user: str) -> bool:
        self._read("get_org_membership", user)
        return user in self.members

    def list_teams_page(self, page: int, per_page: int) -> List[str]:
        self._read("list_teams", str(page))
        slugs = sorted(self.teams)
        return slugs[page * per_page:(page + 1) * per_page]

    def get_team_membership(self, team: str, user: str) -> bool:
        self._read("get_team_membership", team)
        return user in self.teams.get(team, set())

    def remove_org_member(self, user: str) -> ConnectorResult:
        return self._mutate("remove_org_member", user, user in self.members,
                            lambda: self.members.discard(user))

    def remove_team_member(self, team: str, user: str) -> ConnectorResult:
        members = self.teams.get(team, set())
        return self._mutate("remove_team_member", team, user in members,
                            lambda: members.discard(user))

    def list_org_repos_page(self, page: int, per_page: int) -> List[str]:
        self._read("list_org_repos", str(page))
        names = sorted(self.repos)
        return names[page * per_page:(page + 1) * per_page]

    def get_repo_collaborator(self, repo: str, user: str) -> bool:
        self._read("get_repo_collaborator", repo)
        return user in self.repos.get(repo, set())

    def remove_repo_collaborator(self, repo: str, user: str) -> ConnectorResult:
        collaborators = self.repos.get(repo, set())
        return self._mutate("remove_repo_collaborator", repo, user in collaborators,
                            lambda: collaborators.discard(user))

    def list_sso_credential_authorizations(self) -> List[Dict[str, str]]:
        self._read("list_sso_credential_authorizations")
        return [dict(c) for c in self.credentials]

    def revoke_sso_credential(self, credential_id: str) -> ConnectorResult:
        exists = any(c["credential_id"] == credential_id for c in self.credentials)

        def apply():
            self.credentials[:] = [c for c in self.credentials if c["credential_id"] != credential_id]
        return self._mutate("revoke_sso_credential", credential_id, exists, apply)
