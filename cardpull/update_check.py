from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

log = logging.getLogger(__name__)

UPSTREAM_REPO = "chatgptuk/ldc-shop"
GITHUB_API = "https://api.github.com"
GITHUB_HEADERS = {
    "Accept": "application/vnd.github.v3+json",
    "Cache-Control": "no-cache",
}


@dataclass
class UpdateCheckResult:
    has_update: bool
    current_version: str
    latest_version: Optional[str] = None
    release_url: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "hasUpdate": self.has_update,
            "currentVersion": self.current_version,
            "latestVersion": self.latest_version,
            "releaseUrl": self.release_url,
        }
        if self.error is not None:
            out["error"] = self.error
        return out

    def should_show(self, dismissed_version: Optional[str]) -> bool:
        return self.has_update and self.latest_version != dismissed_version


def _part(s: str) -> int:
    try:
        return int(s)
    except ValueError:
        return 0


def compare_versions(a: str, b: str) -> int:
    pa = [_part(p) for p in a.split(".")]
    pb = [_part(p) for p in b.split(".")]
    for i in range(max(len(pa), len(pb))):
        x = pa[i] if i < len(pa) else 0
        y = pb[i] if i < len(pb) else 0
        if x > y:
            return 1
        if x < y:
            return -1
    return 0


def _strip_v(tag: Any) -> str:
    tag = str(tag or "")
    return tag[1:] if tag.startswith("v") else tag


async def check_for_updates(
    http: httpx.AsyncClient,
    current_version: str,
    repo: str = UPSTREAM_REPO,
) -> UpdateCheckResult:
    """Compare ``current_version`` with the latest published release.

    Repos without releases fall back to their newest tag. Never raises; any
    failure comes back on ``error`` with ``has_update=False``.
    """
    try:
        r = await http.get(
            f"{GITHUB_API}/repos/{repo}/releases/latest",
            headers=GITHUB_HEADERS,
        )
        if r.is_success:
            release = r.json() or {}
            latest = _strip_v(release.get("tag_name"))
            return UpdateCheckResult(
                has_update=bool(latest)
                and compare_versions(latest, current_version) > 0,
                current_version=current_version,
                latest_version=latest or None,
                release_url=(
                    release.get("html_url")
                    or f"https://github.com/{repo}/releases"
                ),
            )

        if r.status_code == 404:
            tr = await http.get(
                f"{GITHUB_API}/repos/{repo}/tags", headers=GITHUB_HEADERS
            )
            if tr.is_success:
                tags = tr.json() or []
                latest = _strip_v(tags[0].get("name") if tags else "")
                if not latest:
                    return UpdateCheckResult(
                        has_update=False,
                        current_version=current_version,
                        release_url=f"https://github.com/{repo}",
                    )
                return UpdateCheckResult(
                    has_update=compare_versions(latest, current_version) > 0,
                    current_version=current_version,
                    latest_version=latest,
                    release_url=f"https://github.com/{repo}",
                )

        raise RuntimeError(f"GitHub API error: {r.status_code}")
    except Exception as e:
        log.warning("update check failed: %s", e)
        return UpdateCheckResult(
            has_update=False,
            current_version=current_version,
            error=str(e) or "update_check_failed",
        )
