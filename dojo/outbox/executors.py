"""
Executors perform the external call behind an outbox entry.

One executor per action type, looked up in an ExecutorRegistry. Adding a new
kind of side effect means registering a new executor; the processor does not
change.
"""
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

import requests

from dojo.github.api import GitHubAPI, GitHubAPIError
from dojo.logging_config import get_logger
from dojo.mailer.sender import EmailSendError, NoopEmailSender, ResendEmailSender, SendRequest
from dojo.outbox.entry import ACTION_EMAIL, ACTION_GITHUB_ISSUE
from dojo.outbox.errors import ExecutorError, PermanentExecutorError, UnroutableActionError

logger = get_logger(__name__)

# GitHub statuses that no amount of retrying will fix
GITHUB_PERMANENT_STATUSES = frozenset({400, 404, 410, 422})
EMAIL_PERMANENT_STATUSES = frozenset({400, 422})


@dataclass(frozen=True)
class ExecutionContext:
    entry_id: str
    action_type: str
    attempt: int
    timeout: float = 15                 # seconds allowed for the external call
    deadline: Optional[datetime] = None  # end of the current sweep, if any


class Executor(ABC):
    """Performs one kind of external side effect."""

    @abstractmethod
    def execute(self, context: ExecutionContext, payload: str) -> str:
        """
        Perform the external call described by payload.

        Returns:
            The external id of the created resource (issue number, message id, ...)

        Raises:
            PermanentExecutorError: If the payload can never succeed
            Exception: Anything else is treated as transient and retried
        """


def load_payload(payload: str) -> dict:
    """Parse a JSON payload document; malformed documents are permanent failures."""
    try:
        document = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise PermanentExecutorError(f"unmarshal payload: {e}") from e
    if not isinstance(document, dict):
        raise PermanentExecutorError("payload must be a JSON object")
    return document


class ExecutorRegistry:
    """Lookup table from action type to executor."""

    def __init__(self, executors: Optional[Dict[str, Executor]] = None):
        self._executors: Dict[str, Executor] = {}
        for action_type, executor in (executors or {}).items():
            self.register(action_type, executor)

    def register(self, action_type: str, executor: Executor, replace: bool = False):
        if not action_type:
            raise ValueError("action type is required")
        if action_type in self._executors and not replace:
            raise ValueError(f"executor already registered for action type: {action_type}")
        self._executors[action_type] = executor

    def get(self, action_type: str) -> Executor:
        """
        Raises:
            UnroutableActionError: If nothing is registered for action_type
        """
        try:
            return self._executors[action_type]
        except KeyError:
            raise UnroutableActionError(action_type) from None

    def action_types(self):
        return sorted(self._executors)

    def __contains__(self, action_type):
        return action_type in self._executors

    def __len__(self):
        return len(self._executors)


class GitHubIssueExecutor(Executor):
    """
    Files a GitHub issue.

    Payload: {"title": str, "body": str, "labels": [str], "repository": "owner/name"}
    External id: the issue number.
    """

    def __init__(self, client: GitHubAPI):
        self.client = client

    def execute(self, context: ExecutionContext, payload: str) -> str:
        document = load_payload(payload)
        title = document.get("title")
        if not title:
            raise PermanentExecutorError("github issue payload is missing 'title'")
        repository = document.get("repository") or self.client.default_repository
        if not repository:
            raise PermanentExecutorError("github issue payload has no repository and no default is configured")
        if not self.client.token:
            # Configuration can be fixed without touching the entry, so keep retrying
            raise ExecutorError("github token is not configured")

        try:
            result = self.client.create_issue(
                title=title,
                body=document.get("body", ""),
                labels=document.get("labels") or [],
                repository=repository,
                timeout=context.timeout,
            )
        except GitHubAPIError as e:
            if e.status_code in GITHUB_PERMANENT_STATUSES:
                raise PermanentExecutorError(str(e)) from e
            raise ExecutorError(str(e)) from e
        except requests.exceptions.RequestException as e:
            raise ExecutorError(f"github api request: {e}") from e

        number = result.get("number")
        if number is None:
            raise ExecutorError("github response did not include an issue number")
        return str(number)


class EmailExecutor(Executor):
    """
    Sends a transactional email.

    Payload: {"to": [str], "subject": str, "body": str, "html": bool}
    External id: the provider message id.
    """

    def __init__(self, sender):
        self.sender = sender

    def execute(self, context: ExecutionContext, payload: str) -> str:
        document = load_payload(payload)
        to = document.get("to") or []
        if isinstance(to, str):
            to = [to]
        if not to:
            raise PermanentExecutorError("email payload has no recipients")
        if not document.get("subject"):
            raise PermanentExecutorError("email payload is missing 'subject'")

        request = SendRequest(
            to=to,
            subject=document["subject"],
            body=document.get("body", ""),
            html=bool(document.get("html", False)),
        )
        try:
            result = self.sender.send(request, timeout=context.timeout)
        except EmailSendError as e:
            if e.status_code in EMAIL_PERMANENT_STATUSES:
                raise PermanentExecutorError(str(e)) from e
            raise ExecutorError(str(e)) from e
        except requests.exceptions.RequestException as e:
            raise ExecutorError(f"email provider request: {e}") from e
        return result.message_id


def build_registry(config) -> ExecutorRegistry:
    """
    Registry with the executors the school uses, wired from app config.

    Email goes through Resend when RESEND_API_KEY is set, otherwise messages
    are only logged.
    """
    timeout = config.get("OUTBOX_EXECUTE_TIMEOUT_SECONDS", 15)
    github = GitHubAPI(
        config.get("GITHUB_TOKEN"),
        api_url=config.get("GITHUB_API_URL", "https://api.github.com"),
        default_repository=config.get("GITHUB_REPO"),
        timeout=timeout,
    )

    if config.get("RESEND_API_KEY"):
        sender = ResendEmailSender(
            config["RESEND_API_KEY"],
            config.get("EMAIL_FROM"),
            api_url=config.get("RESEND_API_URL", "https://api.resend.com"),
            timeout=timeout,
        )
    else:
        logger.warning("RESEND_API_KEY not set, outbox emails will only be logged")
        sender = NoopEmailSender()

    registry = ExecutorRegistry()
    registry.register(ACTION_GITHUB_ISSUE, GitHubIssueExecutor(github))
    registry.register(ACTION_EMAIL, EmailExecutor(sender))
    return registry
