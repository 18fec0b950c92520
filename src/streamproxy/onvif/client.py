"""ONVIF session wrapper for stream URI lookup and PTZ control."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

from streamproxy.interfaces import DiscoverySession

try:
    import onvif as _onvif_pkg  # type: ignore[import-not-found]
    from onvif import ONVIFCamera as _ONVIFCamera  # type: ignore[import-not-found]
except Exception:  # pragma: no cover - exercised via dependency guard tests
    _onvif_pkg = None
    _ONVIFCamera = None

DEFAULT_STREAM_PROTOCOL = "RTSP"


@dataclass(frozen=True, slots=True)
class OnvifMediaProfile:
    """Token and display name of a media profile."""

    token: str
    name: str


class OnvifCameraClient(DiscoverySession):
    """ONVIF discovery session backed by onvif-zeep-async."""

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        *,
        port: int = 80,
        wsdl_dir: str | None = None,
    ) -> None:
        camera_class = _require_onvif_camera_class()
        resolved_wsdl = wsdl_dir if wsdl_dir is not None else _default_wsdl_dir()
        self._camera = camera_class(host, port, username, password, resolved_wsdl)
        self._initialized = False
        self._media_service: Any | None = None
        self._ptz_service: Any | None = None
        self._default_profile_token: str | None = None

    async def connect(self) -> None:
        """Fetch service addresses; fails when the device is unreachable."""
        if not self._initialized:
            await self._camera.update_xaddrs()
            self._initialized = True

    async def close(self) -> None:
        """Close the ONVIFCamera transport."""
        close = getattr(self._camera, "close", None)
        if close is not None:
            await close()

    async def get_media_profiles(self) -> list[OnvifMediaProfile]:
        """List the device's media profiles."""
        media_profiles = list(await (await self._media()).GetProfiles())
        profiles: list[OnvifMediaProfile] = []
        for index, profile in enumerate(media_profiles):
            token = _profile_token(profile, index=index)
            name = getattr(profile, "Name", None)
            profiles.append(OnvifMediaProfile(token=token, name=str(name) if name else token))
        return profiles

    async def get_stream_uri(self, profile: str | None, protocol: str | None) -> str:
        media = await self._media()
        token = profile if profile else await self._first_profile_token()
        request = {
            "StreamSetup": {
                "Stream": "RTP-Unicast",
                "Transport": {"Protocol": protocol or DEFAULT_STREAM_PROTOCOL},
            },
            "ProfileToken": token,
        }
        response = await media.GetStreamUri(request)
        uri = getattr(response, "Uri", None)
        if not uri:
            raise RuntimeError(f"GetStreamUri returned empty Uri for profile {token}")
        self._default_profile_token = token
        return str(uri)

    async def relative_move(self, x: float, y: float, zoom: float) -> None:
        ptz = await self._ptz()
        await ptz.RelativeMove(
            {
                "ProfileToken": await self._profile_for_ptz(),
                "Translation": {
                    "PanTilt": {"x": x, "y": y},
                    "Zoom": {"x": zoom},
                },
            }
        )

    async def goto_home_position(self) -> None:
        ptz = await self._ptz()
        await ptz.GotoHomePosition({"ProfileToken": await self._profile_for_ptz()})

    async def _first_profile_token(self) -> str:
        profiles = await self.get_media_profiles()
        if not profiles:
            raise RuntimeError("ONVIF device reports no media profiles")
        return profiles[0].token

    async def _profile_for_ptz(self) -> str:
        if self._default_profile_token is None:
            self._default_profile_token = await self._first_profile_token()
        return self._default_profile_token

    async def _media(self) -> Any:
        await self.connect()
        if self._media_service is None:
            self._media_service = self._camera.create_media_service()
        return self._media_service

    async def _ptz(self) -> Any:
        await self.connect()
        if self._ptz_service is None:
            self._ptz_service = self._camera.create_ptz_service()
        return self._ptz_service


def _require_onvif_camera_class() -> type[Any]:
    if _ONVIFCamera is None:
        raise RuntimeError(
            "Missing dependency: onvif-zeep-async. Install with: pip install onvif-zeep-async"
        )
    return cast(type[Any], _ONVIFCamera)


def _default_wsdl_dir() -> str:
    """WSDL files shipped with onvif-zeep-async.

    Newer releases keep them inside the package, older ones next to it in
    site-packages.
    """
    if _onvif_pkg is None:
        return ""
    package_dir = Path(_onvif_pkg.__file__).parent
    for candidate in (package_dir / "wsdl", package_dir.parent / "wsdl"):
        if candidate.is_dir():
            return str(candidate)
    return str(package_dir.parent / "wsdl")


def _profile_token(profile: Any, *, index: int) -> str:
    for attr in ("token", "_token", "Token"):
        value = getattr(profile, attr, None)
        if isinstance(value, str) and value:
            return value
    return f"profile-{index}"


__all__ = ["DEFAULT_STREAM_PROTOCOL", "OnvifCameraClient", "OnvifMediaProfile"]
