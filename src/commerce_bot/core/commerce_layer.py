"""
HTTP adapters for Commerce Layer.

``CommerceLayerAuthClient`` performs grant exchanges against the
authorization server and classifies failures into the bot's error taxonomy.
``CommerceClient`` is a resource client bound to a single resolved
``Session``; build one per command and close it when done.
"""

import datetime
import logging
from typing import Any, Optional

import requests

from commerce_bot.core.exceptions import (
    AuthError,
    CommerceBotError,
    NotFoundError,
    TransientError,
)
from commerce_bot.core.models import GrantType, Session, TokenGrant
from commerce_bot.core.resolver import Clock, utcnow
from commerce_bot.core.settings import COMMERCE_LAYER_AUTH_ENDPOINT

# Setup module-level logger
logger = logging.getLogger("commerce_layer")

JSON_API_MEDIA_TYPE = "application/vnd.api+json"

# Status codes meaning the grant itself was refused
REJECTION_STATUS_CODES = frozenset({400, 401, 403})

ORDER_INCLUDES = (
    "customer",
    "market",
    "shipments",
    "shipping_address",
    "billing_address",
    "payment_method",
)
RETURN_INCLUDES = (
    "order",
    "stock_location",
    "customer",
    "origin_address",
    "destination_address",
)


def _error_code(response: requests.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    if body.get("error"):
        return str(body["error"])
    errors = body.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        return errors[0].get("code")
    return None


class CommerceLayerAuthClient:
    """
    Grant exchanges against the Commerce Layer authorization server.

    Args:
        auth_endpoint (str): Token endpoint. May contain a ``{slug}``
            placeholder for organization-scoped endpoints.
        timeout (float): Request timeout in seconds.
        http (requests.Session | None): HTTP session to reuse.
        clock (Callable): Current UTC time, used when the response has no issue time.
    """

    def __init__(
        self,
        auth_endpoint: str = COMMERCE_LAYER_AUTH_ENDPOINT,
        timeout: float = 10.0,
        http: Optional[requests.Session] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.auth_endpoint = auth_endpoint
        self.timeout = timeout
        self.clock = clock
        self._http = http or requests.Session()

    def exchange(self, grant_type: GrantType, params: dict[str, Any]) -> TokenGrant:
        """
        Perform one grant exchange.

        Args:
            grant_type (GrantType): The OAuth grant to perform.
            params (dict): Client id/secret, organization ``slug`` and the
                grant-specific fields (``refresh_token``, ``code``, ``scope``...).
                Empty values are left out of the request.

        Returns:
            TokenGrant: The issued tokens.

        Raises:
            AuthError: The authorization server rejected the grant.
            TransientError: The server could not be reached or answered with
                an unusable response.
        """
        fields = dict(params)
        slug = fields.pop("slug", None) or ""
        url = self.auth_endpoint.format(slug=slug)
        payload = {"grant_type": grant_type.value}
        payload.update({key: value for key, value in fields.items() if value})

        logger.debug("Requesting %s grant for organization %s", grant_type.value, slug)
        try:
            response = self._http.post(
                url,
                json=payload,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise TransientError(f"{grant_type.value} grant timed out") from e
        except requests.RequestException as e:
            raise TransientError(f"{grant_type.value} grant failed: {type(e).__name__}") from e

        if response.status_code in REJECTION_STATUS_CODES:
            error_code = _error_code(response)
            logger.warning(
                "%s grant rejected with status %s (%s)",
                grant_type.value,
                response.status_code,
                error_code,
            )
            raise AuthError(
                f"{grant_type.value} grant rejected: {error_code}", error_code=error_code
            )
        if not response.ok:
            raise TransientError(
                f"Authorization server answered {response.status_code} to {grant_type.value} grant"
            )

        try:
            body = response.json()
            access_token = str(body["access_token"])
            expires_in = int(body["expires_in"])
        except (ValueError, KeyError, TypeError) as e:
            raise TransientError("Malformed token response") from e

        created_at = body.get("created_at")
        if isinstance(created_at, (int, float)):
            issued_at = datetime.datetime.fromtimestamp(created_at, tz=datetime.UTC)
        else:
            issued_at = self.clock()

        return TokenGrant(
            access_token=access_token,
            refresh_token=body.get("refresh_token"),
            expires_at=issued_at + datetime.timedelta(seconds=expires_in),
            scope=body.get("scope"),
        )


class CommerceClient:
    """
    Commerce Layer resource client for one resolved session.

    Use as a context manager so the underlying HTTP session is closed with
    the command that created it.
    """

    def __init__(
        self,
        session: Session,
        timeout: float = 10.0,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.session = session
        self.timeout = timeout
        self._http = http or requests.Session()
        self._http.headers.update(
            {
                "Authorization": f"Bearer {session.access_token}",
                "Accept": JSON_API_MEDIA_TYPE,
            }
        )

    def __enter__(self) -> "CommerceClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def retrieve_order(self, order_id: str) -> dict[str, Any]:
        return self._get(f"orders/{order_id}", {"include": ",".join(ORDER_INCLUDES)})

    def last_order(self) -> dict[str, Any]:
        document = self._get(
            "orders",
            {"include": ",".join(ORDER_INCLUDES), "sort": "-created_at", "page[size]": 1},
        )
        return self._first(document, "Order")

    def retrieve_return(self, return_id: str) -> dict[str, Any]:
        return self._get(f"returns/{return_id}", {"include": ",".join(RETURN_INCLUDES)})

    def last_return(self, status: str) -> dict[str, Any]:
        """Most recent return with the given status."""
        sort = "-created_at" if status == "requested" else "-approved_at"
        document = self._get(
            "returns",
            {
                "include": ",".join(RETURN_INCLUDES),
                "filter[q][status_eq]": status,
                "sort": sort,
                "page[size]": 1,
            },
        )
        return self._first(document, "Return")

    def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.session.api_url}/{path}"
        try:
            response = self._http.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransientError(f"Commerce Layer request failed: {type(e).__name__}") from e

        if response.status_code == 401:
            raise AuthError(
                "Commerce Layer rejected the access token", error_code=_error_code(response)
            )
        if response.status_code == 404:
            raise NotFoundError(f"Resource {path} not found")
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientError(f"Commerce Layer answered {response.status_code}")
        if not response.ok:
            raise CommerceBotError(
                f"Commerce Layer request failed with {response.status_code}: "
                f"{_error_code(response)}"
            )
        try:
            return dict(response.json())
        except ValueError as e:
            raise TransientError("Commerce Layer returned a malformed document") from e

    @staticmethod
    def _first(document: dict[str, Any], title: str) -> dict[str, Any]:
        data = document.get("data") or []
        if not data:
            raise NotFoundError(f"{title} resource not found")
        return {"data": data[0], "included": document.get("included", [])}
