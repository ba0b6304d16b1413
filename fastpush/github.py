"""GitHub repository creation for `--new-repo` runs."""
# ======================= STANDARDS =======================
from dataclasses import dataclass
from typing import Any, Protocol
import logging as log

# ===================== THIRD-PARTIES ======================
import httpx

# ======================== LOCALS =========================
from .errors import RepoCreationError
from . import _constants as const

logger = log.getLogger("fastpush.github")

API        = const.GITHUB
TIMEOUT_S  = 15.0
USER_AGENT = "fastpush"


@dataclass(frozen=True)
class CreatedRepo:
    name: str
    full_name: str
    html_url: str
    ssh_url: str
    clone_url: str


class RepoCreator(Protocol):
    def create(self, name: str, private: bool = False,
               description: str = "") -> CreatedRepo: ...


def _error_message(resp: httpx.Response) -> str:
    try: data: Any = resp.json()
    except ValueError: data = {}
    if not isinstance(data, dict): data = {}
    message = str(data.get("message") or f"HTTP {resp.status_code}")
    details = [str(e.get("message") or e.get("code") or "")
               for e in data.get("errors") or [] if isinstance(e, dict)]
    details = [d for d in details if d]
    if details: message += f" ({'; '.join(details)})"
    return message


class GitHubRepoCreator:
    """Creates a repository on the token owner's account."""

    def __init__(self, token: str, timeout_s: float = TIMEOUT_S) -> None:
        if not token or not token.strip():
            raise RepoCreationError("a GitHub token is required to "
                  "create repositories (--gh-token or GITHUB_TOKEN)")
        self._token    = token.strip()
        self.timeout_s = timeout_s

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
        }

    def create(self, name: str, private: bool = False,
               description: str = "") -> CreatedRepo:
        payload = {
            "name": name,
            "private": private,
            "description": description,
            "auto_init": False,
        }
        logger.info("creating GitHub repository %s (private=%s)", name,
            private)
        try:
            resp = httpx.post(f"{API}/user/repos", json=payload,
                   headers=self._headers(), timeout=self.timeout_s)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            logger.error("repository creation failed: %s", message)
            raise RepoCreationError(f"GitHub refused to create '{name}': "
                  f"{message}", e.response.status_code) from None
        except httpx.RequestError as e:
            raise RepoCreationError(f"could not reach GitHub: {e}") from e
        except ValueError as e:
            raise RepoCreationError("GitHub returned an unreadable "
                  f"response: {e}") from e

        return CreatedRepo(
            name=str(data.get("name") or name),
            full_name=str(data.get("full_name") or ""),
            html_url=str(data.get("html_url") or ""),
            ssh_url=str(data.get("ssh_url") or ""),
            clone_url=str(data.get("clone_url") or ""),
        )
