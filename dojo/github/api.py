import requests

from dojo.logging_config import get_logger

logger = get_logger(__name__)

GITHUB_API_VERSION = "2022-11-28"


class GitHubAPIError(Exception):
    """GitHub answered with something other than the expected status."""

    def __init__(self, status_code, message):
        self.status_code = status_code
        super().__init__(f"github api returned {status_code}: {message}")


class GitHubAPI:
    """Minimal GitHub REST client for filing issues."""

    def __init__(self, token, api_url="https://api.github.com", default_repository=None, timeout=15):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.default_repository = default_repository
        self.timeout = timeout

    def _headers(self):
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "Content-Type": "application/json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    def create_issue(self, title, body, labels=None, repository=None, timeout=None):
        """
        Create an issue and return GitHub's response.

        Args:
            title: Issue title
            body: Markdown body
            labels: Optional list of label names
            repository: 'owner/name'; falls back to the configured default
            timeout: Per-request timeout in seconds

        Returns:
            dict with at least 'number' and 'html_url'

        Raises:
            ValueError: If no repository or token is available
            GitHubAPIError: If GitHub does not answer 201 Created
            requests.exceptions.RequestException: On network failures
        """
        repository = repository or self.default_repository
        if not repository:
            raise ValueError("github repository is required")
        if not self.token:
            raise ValueError("github token is not configured")

        url = f"{self.api_url}/repos/{repository}/issues"
        payload = {"title": title, "body": body, "labels": list(labels or [])}

        response = requests.post(
            url,
            json=payload,
            headers=self._headers(),
            timeout=timeout or self.timeout,
        )
        if response.status_code != 201:
            logger.warning(
                "github_issue_rejected",
                repository=repository,
                status_code=response.status_code,
            )
            raise GitHubAPIError(response.status_code, response.text[:500])

        result = response.json()
        logger.info("github_issue_created", repository=repository, number=result.get("number"))
        return result

