from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

import requests

from mindchat_auth.config import Config


class ProfileStoreError(RuntimeError):
    """The profile store could not be reached or rejected the query."""


class ProfileStore(Protocol):
    """Rows of the `profiles` table, keyed by identity user id.

    Lookups return None when the row does not exist and raise
    ProfileStoreError for transport/database failures.
    """

    def with_token(self, access_token: str) -> "ProfileStore": ...

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]: ...

    def get_role(self, user_id: str) -> Optional[Dict[str, Any]]: ...

    def create_profile(self, *, user_id: str, email: Optional[str], role: str) -> None: ...

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> None: ...


class SupabaseProfileStore:
    """PostgREST access to the profiles table using the anon key.

    Row level security on the backend decides what each caller may see;
    `with_token` returns a store whose queries run as the signed-in user.
    """

    def __init__(
        self,
        cfg: Config,
        *,
        http: Optional[requests.Session] = None,
        access_token: Optional[str] = None,
    ) -> None:
        if not cfg.SUPABASE_URL or not cfg.SUPABASE_ANON_KEY:
            raise RuntimeError("supabase_not_configured")
        self.url = f"{cfg.SUPABASE_URL.rstrip('/')}/rest/v1/{cfg.PROFILES_TABLE}"
        self.anon_key = cfg.SUPABASE_ANON_KEY
        self.timeout = float(cfg.IDENTITY_TIMEOUT_SECONDS)
        self.access_token = access_token
        self._cfg = cfg
        self._http = http or requests.Session()

    def with_token(self, access_token: str) -> "SupabaseProfileStore":
        return SupabaseProfileStore(self._cfg, http=self._http, access_token=access_token)

    def _headers(self, *, prefer: Optional[str] = None) -> Dict[str, str]:
        h = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token or self.anon_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if prefer:
            h["Prefer"] = prefer
        return h

    def _send(self, method: str, **kwargs: Any) -> requests.Response:
        try:
            r = self._http.request(method, self.url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise ProfileStoreError(f"profile store request failed: {e}") from e
        if r.status_code >= 400:
            raise ProfileStoreError(f"profile store error {r.status_code}: {r.text[:500]}")
        return r

    def _select_one(self, user_id: str, columns: str) -> Optional[Dict[str, Any]]:
        r = self._send(
            "GET",
            headers=self._headers(),
            params={"select": columns, "id": f"eq.{user_id}", "limit": "1"},
        )
        try:
            rows = r.json()
        except ValueError as e:
            raise ProfileStoreError("profile store returned invalid JSON") from e
        if not isinstance(rows, list) or not rows:
            return None
        return dict(rows[0])

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._select_one(user_id, "*")

    def get_role(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._select_one(user_id, "role")

    def create_profile(self, *, user_id: str, email: Optional[str], role: str) -> None:
        self._send(
            "POST",
            headers=self._headers(prefer="return=minimal"),
            json=[{"id": user_id, "email": email, "role": role}],
        )

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        self._send(
            "PATCH",
            headers=self._headers(prefer="return=minimal"),
            params={"id": f"eq.{user_id}"},
            json=dict(fields),
        )
