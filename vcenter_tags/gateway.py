"""
Remote taxonomy gateway.

The reconciliation and export code only talk to the narrow TaxonomyGateway
protocol below. VcenterTagClient implements it over the vSphere Automation
REST API (vCenter 7.0 U2 and later).

===============================================================================
API NOTES
===============================================================================

- Session:      POST /api/session (basic auth), DELETE /api/session
- Categories:   /api/cis/tagging/category (GET ids, POST create)
                /api/cis/tagging/category/{id} (GET detail, PATCH update)
- Tags:         /api/cis/tagging/tag (GET ids, POST create)
                /api/cis/tagging/tag/{id} (GET detail, PATCH update)
- Usage:        POST /api/cis/tagging/tag-association/{id}?action=list-attached-objects

===============================================================================
"""

from typing import Optional, Protocol

import requests
import urllib3

from .model import Cardinality, Tag, TagCategory


class GatewayError(Exception):
    """A remote call failed. Recoverable for the item being processed."""


class GatewayConnectionError(GatewayError):
    """The session to the remote store is unusable. Fatal for the run."""


class TaxonomyGateway(Protocol):
    def list_categories(self) -> list: ...

    def list_tags(self) -> list: ...

    def create_category(self, category: TagCategory) -> TagCategory: ...

    def update_category(self, name: str, fields: dict) -> TagCategory: ...

    def create_tag(self, tag: Tag) -> Tag: ...

    def update_tag(self, name: str, category_name: str, fields: dict) -> Tag: ...

    def list_assignments(self, tag: Tag) -> tuple: ...


def _error_message(resp) -> str:
    """Pull a readable message out of a vSphere API error response."""
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(data, dict):
        messages = data.get('messages') or []
        texts = [m.get('default_message') for m in messages if isinstance(m, dict)]
        texts = [t for t in texts if t]
        if texts:
            return '; '.join(texts)
        if data.get('message'):
            return str(data['message'])
        if data.get('error_type'):
            return str(data['error_type'])
    return resp.text[:200]


class VcenterTagClient:
    """
    vSphere Automation API client for tag categories and tags.

    One instance holds one authenticated session; it is the handle passed to
    the exporter and the reconciliation engine.
    """

    def __init__(self, host: str, username: str, password: str,
                 verify_ssl: bool = False, timeout: int = 30, verbose: bool = False,
                 session: Optional[requests.Session] = None):
        self.host = host.rstrip('/')
        self.username = username
        self.password = password
        self.timeout = timeout
        self.verbose = verbose
        self.session = session if session is not None else requests.Session()
        self.session.verify = verify_ssl
        if not verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        self.session_id = None
        # name -> id, refreshed by every listing
        self._category_ids = {}
        self._category_names = {}
        self._tag_ids = {}

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()

    # =========================================================================
    # SESSION
    # =========================================================================

    def connect(self) -> None:
        """Authenticate and store the session id header."""
        url = self._api_url("/session")
        try:
            resp = self.session.post(url, auth=(self.username, self.password),
                                     timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise GatewayConnectionError(f"Cannot reach {self.host}: {e}") from e

        if self.verbose:
            print(f"    [DEBUG] POST {url} -> {resp.status_code}")

        if resp.status_code not in [200, 201]:
            raise GatewayConnectionError(
                f"Authentication to {self.host} failed: {_error_message(resp)}")

        self.session_id = resp.json()
        self.session.headers.update({
            "vmware-api-session-id": self.session_id,
            "Content-Type": "application/json"
        })

    def disconnect(self) -> None:
        """Close the session. Errors on logout are ignored."""
        if not self.session_id:
            return
        try:
            self.session.delete(self._api_url("/session"), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            if self.verbose:
                print(f"    [DEBUG] Logout failed: {e}")
        self.session_id = None

    # =========================================================================
    # HTTP
    # =========================================================================

    def _api_url(self, path: str) -> str:
        return f"https://{self.host}/api{path}"

    def _request(self, method: str, path: str, payload=None):
        if not self.session_id:
            raise GatewayConnectionError(f"Not connected to {self.host}")

        url = self._api_url(path)
        try:
            resp = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise GatewayConnectionError(f"{method} {path} failed: {e}") from e

        if self.verbose:
            print(f"    [DEBUG] {method} {url} -> {resp.status_code}")
            if payload is not None:
                print(f"    [DEBUG] Payload: {payload}")

        if resp.status_code in [401, 403]:
            raise GatewayConnectionError(
                f"Session rejected by {self.host}: {_error_message(resp)}")
        if resp.status_code not in [200, 201, 204]:
            raise GatewayError(_error_message(resp))

        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    def list_categories(self) -> list:
        """Get all tag categories with their details."""
        categories = []
        for category_id in self._request("GET", "/cis/tagging/category") or []:
            data = self._request("GET", f"/cis/tagging/category/{category_id}")
            categories.append(self._category_from_api(data))

        self._category_ids = {c.name: c.remote_id for c in categories}
        self._category_names = {c.remote_id: c.name for c in categories}
        return categories

    def create_category(self, category: TagCategory) -> TagCategory:
        payload = {
            "name": category.name,
            "description": category.description or "",
            "cardinality": category.cardinality.name,
            "associable_types": list(category.entity_types)
        }
        category_id = self._request("POST", "/cis/tagging/category", payload)
        self._category_ids[category.name] = category_id
        self._category_names[category_id] = category.name
        return TagCategory(
            name=category.name,
            description=category.description,
            cardinality=category.cardinality,
            entity_types=tuple(category.entity_types),
            remote_id=category_id
        )

    def update_category(self, name: str, fields: dict) -> TagCategory:
        """
        Update description and/or cardinality of a category.

        Args:
            name: Category name
            fields: Any of 'description' (str) and 'cardinality' (Cardinality)
        """
        category_id = self._category_id(name)
        payload = {}
        if 'description' in fields:
            payload['description'] = fields['description'] or ""
        if 'cardinality' in fields:
            payload['cardinality'] = Cardinality.parse(fields['cardinality']).name

        self._request("PATCH", f"/cis/tagging/category/{category_id}", payload)
        data = self._request("GET", f"/cis/tagging/category/{category_id}")
        return self._category_from_api(data)

    def _category_id(self, name: str) -> str:
        if name not in self._category_ids:
            self.list_categories()
        if name not in self._category_ids:
            raise GatewayError(f"Category '{name}' not found on {self.host}")
        return self._category_ids[name]

    def _category_from_api(self, data: dict) -> TagCategory:
        try:
            cardinality = Cardinality.parse(data.get('cardinality') or 'SINGLE')
        except ValueError as e:
            raise GatewayError(f"Category '{data.get('name')}': {e}") from e

        return TagCategory(
            name=data.get('name', ''),
            description=data.get('description') or "",
            cardinality=cardinality,
            entity_types=tuple(data.get('associable_types') or []),
            remote_id=data.get('id')
        )

    # =========================================================================
    # TAGS
    # =========================================================================

    def list_tags(self) -> list:
        """Get all tags, with category ids resolved to category names."""
        refreshed = False
        if not self._category_names:
            self.list_categories()
            refreshed = True

        tags = []
        for tag_id in self._request("GET", "/cis/tagging/tag") or []:
            data = self._request("GET", f"/cis/tagging/tag/{tag_id}")
            category_id = data.get('category_id')
            # Category created since the last listing
            if category_id not in self._category_names and not refreshed:
                self.list_categories()
                refreshed = True
            tags.append(Tag(
                name=data.get('name', ''),
                category_name=self._category_names.get(category_id, category_id or ''),
                description=data.get('description') or "",
                remote_id=data.get('id', tag_id)
            ))

        self._tag_ids = {t.key: t.remote_id for t in tags}
        return tags

    def create_tag(self, tag: Tag) -> Tag:
        payload = {
            "name": tag.name,
            "description": tag.description or "",
            "category_id": self._category_id(tag.category_name)
        }
        tag_id = self._request("POST", "/cis/tagging/tag", payload)
        self._tag_ids[tag.key] = tag_id
        return Tag(
            name=tag.name,
            category_name=tag.category_name,
            description=tag.description,
            remote_id=tag_id
        )

    def update_tag(self, name: str, category_name: str, fields: dict) -> Tag:
        tag_id = self._tag_id(name, category_name)
        payload = {}
        if 'description' in fields:
            payload['description'] = fields['description'] or ""

        self._request("PATCH", f"/cis/tagging/tag/{tag_id}", payload)
        return Tag(
            name=name,
            category_name=category_name,
            description=payload.get('description', ''),
            remote_id=tag_id
        )

    def _tag_id(self, name: str, category_name: str) -> str:
        key = (name, category_name)
        if key not in self._tag_ids:
            self.list_tags()
        if key not in self._tag_ids:
            raise GatewayError(f"Tag '{category_name}/{name}' not found on {self.host}")
        return self._tag_ids[key]

    # =========================================================================
    # USAGE
    # =========================================================================

    def list_assignments(self, tag: Tag) -> tuple:
        """
        Count the objects a tag is attached to.

        Returns: (assignment count, sorted list of distinct object types)
        """
        tag_id = tag.remote_id or self._tag_id(tag.name, tag.category_name)
        attached = self._request(
            "POST", f"/cis/tagging/tag-association/{tag_id}?action=list-attached-objects"
        ) or []
        kinds = sorted({obj.get('type', '') for obj in attached if obj.get('type')})
        return len(attached), kinds
