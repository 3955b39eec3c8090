"""directory_etl.contacts

Mirror directory members (and their parents) into the Wix contact store.

Design principles:
  - Best-effort: contact failures are logged and counted, never retried, and
    never undo the directory write that ran before them.
  - One client per run: the OAuth2 access token is cached on the client
    instance (AccessToken value object) and refreshed shortly before expiry.
  - Credentials come from environment variables only.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Sequence

import requests

from directory_etl.normalize import (
    detect_leadership_role,
    normalize_label_key,
    split_name,
)
from directory_etl.record import LEADERSHIP_GROUP, MemberRecord

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.wixapis.com"
TOKEN_ENDPOINT = "/oauth2/token"
CONTACTS_ENDPOINT = "/contacts/v4/contacts"
PARENT_LABEL = "Parent"


class ContactStoreAuthError(Exception):
    """Raised when the token endpoint does not hand back an access token."""


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ContactStoreCredentials:
    app_id: str
    app_secret: str
    instance_id: str

    @classmethod
    def from_env(
        cls,
        app_id_env: str = "WIX_APP_ID",
        app_secret_env: str = "WIX_APP_SECRET",
        instance_id_env: str = "WIX_INSTANCE_ID",
    ) -> ContactStoreCredentials:
        return cls(
            app_id=os.environ.get(app_id_env, ""),
            app_secret=os.environ.get(app_secret_env, ""),
            instance_id=os.environ.get(instance_id_env, ""),
        )

    @property
    def complete(self) -> bool:
        return bool(self.app_id and self.app_secret and self.instance_id)


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: float  # epoch seconds

    def is_valid(self, now: float, margin: float) -> bool:
        return bool(self.token) and now < self.expires_at - margin


@dataclass(frozen=True)
class ContactResult:
    code: int
    body: str

    @property
    def ok(self) -> bool:
        return self.code in (200, 201)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class ContactStoreClient:
    """Minimal Wix contacts API client (client-credentials OAuth2)."""

    def __init__(
        self,
        credentials: ContactStoreCredentials,
        base_url: str = DEFAULT_BASE_URL,
        session: requests.Session | None = None,
        timeout: int = 30,
        refresh_margin: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.refresh_margin = refresh_margin
        self._clock = clock
        self._token: AccessToken | None = None

    @property
    def cached_token(self) -> AccessToken | None:
        return self._token

    def get_access_token(self) -> str:
        """Return a cached token, fetching a new one when close to expiry.

        Raises:
            ContactStoreAuthError: the token response carries no access_token.
        """
        now = self._clock()
        if self._token is not None and self._token.is_valid(now, self.refresh_margin):
            return self._token.token

        payload = {
            "grant_type": "client_credentials",
            "client_id": self.credentials.app_id,
            "client_secret": self.credentials.app_secret,
            "instanceId": self.credentials.instance_id,
        }
        resp = self.session.post(
            self.base_url + TOKEN_ENDPOINT,
            json=payload,
            timeout=self.timeout,
        )
        try:
            data = resp.json()
        except ValueError:
            data = {}
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise ContactStoreAuthError(
                f"Failed to obtain contact store access token: {resp.text}"
            )
        expires_in = float(data.get("expires_in") or 0)
        self._token = AccessToken(token=token, expires_at=now + expires_in)
        return token

    def post(self, endpoint: str, payload: dict) -> ContactResult:
        token = self.get_access_token()
        resp = self.session.post(
            self.base_url + endpoint,
            data=json.dumps(payload),
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
        )
        result = ContactResult(code=resp.status_code, body=resp.text)
        if not result.ok:
            log.error("Contact store API error %s on %s: %s", result.code, endpoint, result.body)
        return result

    def create_contact(
        self,
        first_name: str,
        last_name: str,
        email: str,
        phone: str = "",
        label_keys: Sequence[str | None] = (),
    ) -> ContactResult | None:
        """Create a contact.  Returns None without calling the API when email is blank."""
        if not email:
            return None

        info: dict = {
            "name": {"first": first_name, "last": last_name},
            "emails": {"items": [{"tag": "MAIN", "email": email}]},
        }
        if phone:
            info["phones"] = {"items": [{"tag": "MOBILE", "phone": phone}]}
        labels = [k for k in label_keys if k]
        if labels:
            info["labelKeys"] = {"items": labels}

        return self.post(CONTACTS_ENDPOINT, {"info": info})


# ---------------------------------------------------------------------------
# Mirroring
# ---------------------------------------------------------------------------

def member_label_keys(record: MemberRecord) -> list[str]:
    """Label keys for the member's own contact."""
    labels = [normalize_label_key(record.contact_group)]
    leadership = normalize_label_key(LEADERSHIP_GROUP)
    if detect_leadership_role(record.title) and leadership not in labels:
        labels.append(leadership)
    return [k for k in labels if k]


def mirror_contacts(
    record: MemberRecord,
    client: ContactStoreClient,
) -> list[ContactResult]:
    """Create the member's contact plus one contact per parent email.

    Parents are named "<member name> - Parent <n>" (n counts from 0) and get
    only the Parent label.  Returns the results of the calls actually made.

    Raises:
        ContactStoreAuthError: propagated from the client.
    """
    results: list[ContactResult] = []
    first, last = split_name(record.name)
    res = client.create_contact(first, last, record.email, record.phone, member_label_keys(record))
    if res is not None:
        results.append(res)

    parent_labels = [normalize_label_key(PARENT_LABEL)]
    for n, email in enumerate(record.guardian_emails):
        parent = split_name(f"{record.name} - Parent {n}")
        res = client.create_contact(parent.first, parent.last, email, "", parent_labels)
        if res is not None:
            results.append(res)
    return results
