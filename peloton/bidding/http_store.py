"""
HTTP client for the game platform's REST API.

Endpoints used:
- GET  /games/{gameId}                       game document
- GET  /gameParticipants?userId=&gameId=     participant lookup
- GET  /games/{gameId}/bids/list             bids (optionally per user)
- GET  /games/{gameId}/team/list-all         finalized ownership records
- GET  /getRankings?year=&limit=             reference riders
- POST /games/{gameId}/bids/place            create / replace a bid
- POST /games/{gameId}/bids/cancel           cancel a bid

Requests are synchronous (requests.Session) and run in a worker thread so
the engine's event loop is never blocked.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

import requests

from .. import config
from .errors import StaleDataConflict, TransportFailure, ValidationRejected
from .models import Bid, Game, Participant, Rider, SoldRider
from .store import BiddingStore

logger = logging.getLogger(__name__)


class HttpBiddingStore(BiddingStore):
    """BiddingStore backed by the platform's HTTP API."""

    def __init__(
        self,
        base_url: str = config.STORE_BASE_URL,
        api_key: Optional[str] = config.STORE_API_KEY,
        timeout: int = config.REQUEST_TIMEOUT,
        max_retries: int = config.MAX_RETRIES,
        backoff_seconds: float = 1.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize HTTP store.

        Args:
            base_url: API root, e.g. https://example.com/api
            api_key: Optional bearer token
            timeout: Per-request timeout in seconds
            max_retries: Attempts before a request is reported as failed
            backoff_seconds: First retry delay, doubled on each attempt
            session: Optional pre-configured requests session
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds

        self.session = session or requests.Session()
        if api_key:
            self.session.headers['Authorization'] = f'Bearer {api_key}'

    async def get_game(self, game_id: str) -> Game:
        data = await self._request('GET', f"/games/{game_id}")
        return Game.from_dict(data['game'])

    async def get_participant(self, game_id: str, user_id: str) -> Optional[Participant]:
        data = await self._request(
            'GET', '/gameParticipants', params={'userId': user_id, 'gameId': game_id}
        )
        participants = data.get('participants', [])
        return Participant.from_dict(participants[0]) if participants else None

    async def list_bids(self, game_id: str, user_id: Optional[str] = None) -> List[Bid]:
        params = {'limit': config.BIDS_PAGE_LIMIT}
        if user_id is not None:
            params['userId'] = user_id
        data = await self._request('GET', f"/games/{game_id}/bids/list", params=params)
        return [Bid.from_dict(b) for b in data.get('bids', [])]

    async def list_sold_riders(self, game_id: str) -> List[SoldRider]:
        data = await self._request('GET', f"/games/{game_id}/team/list-all")
        return [SoldRider.from_dict(r) for r in data.get('riders', [])]

    async def list_riders(self, year: int) -> List[Rider]:
        data = await self._request(
            'GET', '/getRankings', params={'year': year, 'limit': config.RIDERS_PAGE_LIMIT}
        )
        return [Rider.from_dict(r) for r in data.get('riders', [])]

    async def create_bid(self, fields: dict) -> Bid:
        body = {
            'userId': fields['user_id'],
            'participantId': fields.get('participant_id'),
            'riderNameId': fields['rider_name_id'],
            'amount': fields['amount'],
            'riderName': fields.get('rider_name', ''),
            'riderTeam': fields.get('rider_team', ''),
            'jerseyImage': fields.get('jersey_image'),
        }
        data = await self._request(
            'POST', f"/games/{fields['game_id']}/bids/place", json_body=body
        )
        return Bid.from_dict({'game_id': fields['game_id'], **data['bid']})

    async def cancel_bid(self, bid_id: str, game_id: str, user_id: str) -> None:
        await self._request(
            'POST', f"/games/{game_id}/bids/cancel",
            json_body={'userId': user_id, 'bidId': bid_id}
        )

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict] = None,
        json_body: Optional[Dict] = None
    ) -> Dict:
        return await asyncio.to_thread(self._make_request, method, path, params, json_body)

    def _make_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict] = None,
        json_body: Optional[Dict] = None
    ) -> Dict:
        """
        Make HTTP request with retries.

        Network errors and 5xx responses are retried with exponential
        backoff. 4xx responses are mapped to engine errors immediately.

        Returns:
            Parsed JSON response

        Raises:
            ValidationRejected: 400/403/404 with the server's message
            StaleDataConflict: 409
            TransportFailure: After all retries are exhausted
        """
        url = f"{self.base_url}{path}"

        for attempt in range(1, self.max_retries + 1):
            try:
                logger.debug(f"{method} {url} (attempt {attempt}/{self.max_retries})")
                response = self.session.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    timeout=self.timeout
                )
            except requests.RequestException as e:
                logger.error(f"Request failed (attempt {attempt}/{self.max_retries}): {e}")
                if attempt == self.max_retries:
                    raise TransportFailure(f"{method} {path} failed: {e}") from e
                self._backoff(attempt)
                continue

            if response.status_code >= 500:
                logger.error(
                    f"Server error {response.status_code} "
                    f"(attempt {attempt}/{self.max_retries}): {method} {path}"
                )
                if attempt == self.max_retries:
                    raise TransportFailure(
                        f"{method} {path} failed with status {response.status_code}"
                    )
                self._backoff(attempt)
                continue

            if response.status_code >= 400:
                self._raise_client_error(response)

            return response.json()

        raise TransportFailure(f"{method} {path} failed")

    def _raise_client_error(self, response: requests.Response) -> None:
        try:
            message = response.json().get('error') or response.reason
        except ValueError:
            message = response.text or response.reason

        logger.warning(f"Store rejected request ({response.status_code}): {message}")
        if response.status_code == 409:
            raise StaleDataConflict(message)
        raise ValidationRejected(message)

    def _backoff(self, attempt: int) -> None:
        time.sleep(self.backoff_seconds * 2 ** (attempt - 1))

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()
