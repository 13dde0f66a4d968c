from dojo.github.api import GitHubAPI, GitHubAPIError

__all__ = ["GitHubAPI", "GitHubAPIError"]
