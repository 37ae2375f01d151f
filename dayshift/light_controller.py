"""
Light controller module for talking to a Philips Hue bridge.
Provides the scene, light and group operations the reconciler needs over
the bridge's v1 REST API.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

logger = logging.getLogger(__name__)

# Hue expresses transition times in multiples of 100 ms
TRANSITION_TIME_UNIT = 0.1


class BridgeError(Exception):
    """Transport failure or error payload returned by the bridge."""

    def __init__(self, message: str, error_type: Optional[int] = None, address: Optional[str] = None):
        super().__init__(message)
        self.error_type = error_type
        self.address = address


@dataclass
class LightStateChange:
    """State of one light inside a scene (0-255 brightness, mired ct)."""
    on: Optional[bool] = None
    bri: Optional[int] = None
    ct: Optional[int] = None
    transition: Optional[float] = None  # seconds

    def to_hue_api(self) -> Dict[str, Any]:
        """Build the request body, leaving out unset fields."""
        body: Dict[str, Any] = {}
        if self.on is not None:
            body["on"] = self.on
        if self.bri is not None:
            body["bri"] = self.bri
        if self.ct is not None:
            body["ct"] = self.ct
        if self.transition is not None:
            body["transitiontime"] = int(round(self.transition / TRANSITION_TIME_UNIT))
        return body

    @classmethod
    def from_hue_api(cls, data: Dict[str, Any]) -> "LightStateChange":
        transitiontime = data.get("transitiontime")
        return cls(
            on=data.get("on"),
            bri=data.get("bri"),
            ct=data.get("ct"),
            transition=transitiontime * TRANSITION_TIME_UNIT if transitiontime is not None else None,
        )


@dataclass
class LightState:
    """Live state of a light as reported by the bridge."""
    light_id: str
    on: bool
    bri: int
    ct: Optional[int] = None  # None for lights without color temperature

    @classmethod
    def from_hue_api(cls, light_id: str, data: Dict[str, Any]) -> "LightState":
        state = data.get("state", {})
        return cls(
            light_id=light_id,
            on=state.get("on", False),
            bri=state.get("bri", 0),
            ct=state.get("ct"),
        )


@dataclass
class Scene:
    """A scene stored on the bridge.

    Scenes from the scene list only carry a summary; light_states is filled
    when the scene is fetched on its own.
    """
    scene_id: str
    name: str
    lights: List[str] = field(default_factory=list)
    recycle: bool = False
    light_states: Dict[str, LightStateChange] = field(default_factory=dict)

    @classmethod
    def from_hue_api(cls, scene_id: str, data: Dict[str, Any]) -> "Scene":
        return cls(
            scene_id=scene_id,
            name=data.get("name", ""),
            lights=[str(light) for light in data.get("lights", [])],
            recycle=bool(data.get("recycle", False)),
            light_states={
                str(light_id): LightStateChange.from_hue_api(state)
                for light_id, state in (data.get("lightstates") or {}).items()
            },
        )


@dataclass
class Group:
    """A group of lights (room, zone or light group) on the bridge."""
    group_id: str
    name: str
    lights: List[str] = field(default_factory=list)
    recycle: bool = False

    @classmethod
    def from_hue_api(cls, group_id: str, data: Dict[str, Any]) -> "Group":
        return cls(
            group_id=group_id,
            name=data.get("name", ""),
            lights=[str(light) for light in data.get("lights", [])],
            recycle=bool(data.get("recycle", False)),
        )


class HueBridgeClient:
    """Client for a single Hue bridge.

    Requests are sent one at a time by the caller; the client keeps no state
    besides its HTTP session.
    """

    def __init__(self, bridge_address: str, username: str, session: Optional[aiohttp.ClientSession] = None):
        """Initialize the client.

        Args:
            bridge_address: Host or host:port of the bridge
            username: Whitelisted API username
            session: Optional session to use instead of creating one
        """
        self.bridge_address = bridge_address
        self.username = username
        self._session = session
        self._owns_session = session is None

    @property
    def base_url(self) -> str:
        return f"http://{self.bridge_address}/api/{self.username}"

    async def __aenter__(self) -> "HueBridgeClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            # No request timeout: a hung bridge stalls the cycle instead
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None))
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        """Send a request and return the decoded JSON.

        Raises:
            BridgeError: on transport errors, bad status or Hue error payloads
        """
        url = f"{self.base_url}/{path}"
        logger.debug(f"{method} {path} {body if body is not None else ''}")
        try:
            async with self._get_session().request(method, url, json=body) as resp:
                if resp.status >= 400:
                    raise BridgeError(f"{method} {path} failed with HTTP {resp.status}")
                text = await resp.text()
        except aiohttp.ClientError as e:
            raise BridgeError(f"{method} {path} failed: {e}") from e

        try:
            data = json.loads(text)
        except ValueError as e:
            raise BridgeError(f"{method} {path} returned invalid JSON: {text[:200]!r}") from e

        # Errors come back as HTTP 200 with a list of {"error": {...}} entries
        if isinstance(data, list):
            for item in data:
                if isinstance(item, dict) and "error" in item:
                    error = item["error"]
                    raise BridgeError(
                        f"{method} {path}: {error.get('description', 'unknown error')}",
                        error_type=error.get("type"),
                        address=error.get("address"),
                    )
        return data

    async def _get_object(self, path: str) -> Dict[str, Any]:
        data = await self._request("GET", path)
        if not isinstance(data, dict):
            raise BridgeError(f"GET {path} returned {type(data).__name__}, expected an object")
        return data

    async def list_scenes(self) -> Dict[str, Scene]:
        """Get summaries of all scenes, keyed by scene id."""
        data = await self._get_object("scenes")
        return {scene_id: Scene.from_hue_api(scene_id, scene) for scene_id, scene in data.items()}

    async def get_scene(self, scene_id: str) -> Scene:
        """Get a scene including its per-light states."""
        data = await self._get_object(f"scenes/{scene_id}")
        return Scene.from_hue_api(scene_id, data)

    async def get_light_state(self, light_id: str) -> LightState:
        data = await self._get_object(f"lights/{light_id}")
        return LightState.from_hue_api(light_id, data)

    async def set_light_state_in_scene(self, scene_id: str, light_id: str, change: LightStateChange) -> List[Dict[str, Any]]:
        """Store a new state for one light in a scene."""
        return await self._request("PUT", f"scenes/{scene_id}/lightstates/{light_id}", change.to_hue_api())

    async def list_groups(self) -> Dict[str, Group]:
        data = await self._get_object("groups")
        return {group_id: Group.from_hue_api(group_id, group) for group_id, group in data.items()}

    async def recall_scene_in_group(self, group_id: str, scene_id: str) -> List[Dict[str, Any]]:
        """Apply a stored scene to the lights of a group right away."""
        return await self._request("PUT", f"groups/{group_id}/action", {"scene": scene_id})
