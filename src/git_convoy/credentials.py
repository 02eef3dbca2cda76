"""Credential injection for authenticated git remotes.

Credentials reach git in one of two ways. In "helper" mode the remote URL
carries no secret and an inline credential helper answers git's `get`
request from environment variables that exist only in the child process. In
"url" mode the pair is embedded in the URL, which exposes it in process
listings.
"""

import os
import re
from collections.abc import Iterable
from urllib.parse import quote

from .constants import CREDENTIAL_TOKEN_ENV, CREDENTIAL_USER_ENV

REDACTED = "****"

_URL_USERINFO = re.compile(r"(\w+://)[^/\s@]+@")

# Reads the pair from the environment so neither value ever appears in argv.
CREDENTIAL_HELPER = (
    "!f() { test \"$1\" = get || exit 0; "
    f'echo "username=${{{CREDENTIAL_USER_ENV}}}"; '
    f'echo "password=${{{CREDENTIAL_TOKEN_ENV}}}"; }}; f'
)


def normalize_link(link: str) -> str:
    """Strips a scheme and surrounding slashes from a remote link."""
    link = link.strip()
    for scheme in ("https://", "http://"):
        if link.lower().startswith(scheme):
            link = link[len(scheme) :]
            break
    return link.strip("/")


def remote_url(
    link: str, username: str = "", token: str = "", embed: bool = False
) -> str:
    """Builds the HTTPS URL for a remote link.

    Args:
        link (str): Host and path of the remote, without scheme.
        username (str, optional): The account name. Only used when embedding.
        token (str, optional): The access token. Only used when embedding.
        embed (bool, optional): Whether to place the credentials in the URL.

    Returns:
        str: The remote URL.
    """
    host_path = normalize_link(link)
    if embed and (username or token):
        user = quote(username, safe="")
        secret = quote(token, safe="")
        return f"https://{user}:{secret}@{host_path}"
    return f"https://{host_path}"


def git_config_args() -> list[str]:
    """Returns the `-c` options that route authentication through the helper.

    The empty `credential.helper=` entry clears any helpers from the user's
    configuration, so stored credentials never shadow the configured pair.
    """
    return ["-c", "credential.helper=", "-c", f"credential.helper={CREDENTIAL_HELPER}"]


def helper_env(
    username: str, token: str, base: dict[str, str] | None = None
) -> dict[str, str]:
    """Builds the child environment for helper mode.

    Args:
        username (str): The account name.
        token (str): The access token.
        base (dict[str, str] | None, optional): The environment to extend.
                                                Defaults to os.environ.

    Returns:
        dict[str, str]: A copy of the environment with the credential variables set.
    """
    env = dict(os.environ if base is None else base)
    env[CREDENTIAL_USER_ENV] = username
    env[CREDENTIAL_TOKEN_ENV] = token
    return env


def batch_env(base: dict[str, str] | None = None) -> dict[str, str]:
    """Returns an environment in which git fails fast instead of prompting."""
    env = dict(os.environ if base is None else base)
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GCM_INTERACTIVE", "never")
    env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")
    return env


def redact(text: str, secrets: Iterable[str]) -> str:
    """Masks every occurrence of the given secrets (raw and URL-encoded).

    URL user information (`user:token@`) is masked as a whole.
    """
    text = _URL_USERINFO.sub(rf"\g<1>{REDACTED}@", text)
    for secret in secrets:
        if not secret:
            continue
        for form in {secret, quote(secret, safe="")}:
            text = text.replace(form, REDACTED)
    return text
