"""
Organization credentials: from configuration, or from an interactive wizard.

The wizard takes its input, secret-input and connectivity-probe functions as
arguments so it can run without a terminal.
"""
import getpass
import logging
import os
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional

from .client import AdoClient, AdoRequestError
from .config import TOKEN_ENV_VAR, CollectorConfig
from .utils import mask_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    """An organization name and the personal access token used for it."""
    organization: str
    token: str = field(repr=False)

    def __post_init__(self):
        if not self.organization or not self.organization.strip():
            raise ValueError("Organization name must not be empty")
        if not self.token:
            raise ValueError(f"Token for organization '{self.organization}' must not be empty")


def credentials_from_config(config: CollectorConfig,
                            env: Optional[Mapping[str, str]] = None) -> List[Credential]:
    """
    Build credentials for the configured organizations.

    Organizations without their own token use ADO_PAT; organizations with
    neither are skipped with a warning.
    """
    env = os.environ if env is None else env
    default_token = env.get(TOKEN_ENV_VAR)
    credentials = []
    for organization, token in config.organizations:
        token = token or default_token
        if not token:
            logger.warning(f"No token for organization '{organization}'. "
                           f"Set {TOKEN_ENV_VAR} or add a token to the config file.")
            continue
        credentials.append(Credential(organization, token))
    return credentials


def default_probe(config: CollectorConfig) -> Callable[[str, str], None]:
    """Probe that lists one project with the candidate token."""
    def probe(organization: str, token: str) -> None:
        AdoClient(token, config).probe(organization)
    return probe


class CredentialPrompter:
    """
    Interactive credential wizard.

    Asks for an organization name and a masked token, verifies them with the
    probe, offers retry or abort on failure, and repeats while the user wants
    to add another organization.
    """

    def __init__(
        self,
        probe: Callable[[str, str], None],
        input_fn: Callable[[str], str] = input,
        secret_fn: Callable[[str], str] = getpass.getpass,
        output_fn: Callable[[str], None] = print,
    ):
        self.probe = probe
        self.input_fn = input_fn
        self.secret_fn = secret_fn
        self.output_fn = output_fn

    def _ask(self, prompt: str, secret: bool = False) -> Optional[str]:
        try:
            answer = (self.secret_fn if secret else self.input_fn)(prompt)
        except (KeyboardInterrupt, EOFError):
            self.output_fn("")
            return None
        return answer.strip()

    def _ask_required(self, prompt: str, what: str, secret: bool = False) -> Optional[str]:
        while True:
            answer = self._ask(prompt, secret=secret)
            if answer is None:
                return None
            if answer:
                return answer
            self.output_fn(f"{what} cannot be empty.")

    def _confirm(self, prompt: str) -> bool:
        answer = self._ask(prompt)
        return bool(answer) and answer.lower() in ('y', 'yes')

    def prompt_one(self) -> Optional[Credential]:
        """
        Ask for one verified credential.

        Returns None when the user aborts or input ends.
        """
        while True:
            organization = self._ask_required("Azure DevOps organization name: ", "Organization name")
            if organization is None:
                return None
            token = self._ask_required(f"Personal access token for {organization}: ", "Token",
                                       secret=True)
            if token is None:
                return None

            try:
                self.probe(organization, token)
            except AdoRequestError as e:
                self.output_fn(f"Could not connect to '{organization}' with token "
                               f"{mask_token(token)}: {e}")
                choice = self._ask("[R]etry or [A]bort? ")
                if choice is not None and choice.lower() in ('r', 'retry'):
                    continue
                return None

            self.output_fn(f"Connected to '{organization}'.")
            return Credential(organization, token)

    def acquire(self) -> List[Credential]:
        """Collect credentials until the user declines to add another."""
        credentials: List[Credential] = []
        while True:
            credential = self.prompt_one()
            if credential is None:
                break
            credentials.append(credential)
            if not self._confirm("Add another organization? [y/N]: "):
                break
        return credentials
