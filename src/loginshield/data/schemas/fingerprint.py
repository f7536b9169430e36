"""Fingerprint schemas - request input and derived device identity."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from loginshield.common.constants import DeviceConstants
from loginshield.data.schemas.common import utc_now

UNKNOWN = DeviceConstants.UNKNOWN


class RequestMetadata(BaseModel):
    """Raw request data handed over by the HTTP layer."""
    ip: Optional[str] = Field(default=None, description="Client IP as seen by the server")
    headers: Dict[str, str] = Field(default_factory=dict)

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return default

    @property
    def user_agent(self) -> Optional[str]:
        return self.header("user-agent")


class ScreenInfo(BaseModel):
    """Screen signature reported by the browser."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    width: Optional[int] = None
    height: Optional[int] = None
    color_depth: Optional[int] = None
    pixel_ratio: Optional[float] = None


class ClientAttributes(BaseModel):
    """Browser-side fingerprint attributes, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    screen: ScreenInfo = Field(default_factory=ScreenInfo)
    timezone: Optional[str] = None
    platform: Optional[str] = None
    vendor: Optional[str] = None
    webgl: Optional[str] = None
    canvas: Optional[str] = None
    fonts: List[str] = Field(default_factory=list)
    plugins: List[str] = Field(default_factory=list)
    audio_context: Optional[str] = None
    touch_support: bool = False
    hardware_concurrency: Optional[int] = None
    device_memory: Optional[float] = None
    color_depth: Optional[int] = None

    # Optional location hints supplied by the client
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class BrowserInfo(BaseModel):
    name: str = UNKNOWN
    version: str = UNKNOWN
    major: str = UNKNOWN


class EngineInfo(BaseModel):
    name: str = UNKNOWN
    version: str = UNKNOWN


class OSInfo(BaseModel):
    name: str = UNKNOWN
    version: str = UNKNOWN


class HardwareInfo(BaseModel):
    """Device class as parsed from the user agent."""
    type: str = DeviceConstants.DEFAULT_DEVICE_TYPE
    vendor: str = UNKNOWN
    model: str = UNKNOWN


class CpuInfo(BaseModel):
    architecture: str = UNKNOWN


class DeviceSnapshot(BaseModel):
    """The subset of a fingerprint kept on a device record and compared for drift."""
    browser: BrowserInfo = Field(default_factory=BrowserInfo)
    os: OSInfo = Field(default_factory=OSInfo)
    device: HardwareInfo = Field(default_factory=HardwareInfo)
    engine: EngineInfo = Field(default_factory=EngineInfo)
    cpu: CpuInfo = Field(default_factory=CpuInfo)
    platform: Optional[str] = None
    screen: ScreenInfo = Field(default_factory=ScreenInfo)
    timezone: Optional[str] = None
    user_agent: Optional[str] = None


class FingerprintRecord(BaseModel):
    """Everything known about the requesting device plus its identity hash.

    ``fingerprint`` is a SHA-256 digest over the stable attributes only;
    ``ip`` and ``timestamp`` are carried for context but never hashed.
    """
    browser: BrowserInfo = Field(default_factory=BrowserInfo)
    engine: EngineInfo = Field(default_factory=EngineInfo)
    os: OSInfo = Field(default_factory=OSInfo)
    device: HardwareInfo = Field(default_factory=HardwareInfo)
    cpu: CpuInfo = Field(default_factory=CpuInfo)

    ip: str = UNKNOWN
    user_agent: Optional[str] = None
    accept_language: str = UNKNOWN
    accept_encoding: str = UNKNOWN

    screen: ScreenInfo = Field(default_factory=ScreenInfo)
    timezone: Optional[str] = None
    platform: Optional[str] = None
    vendor: Optional[str] = None
    webgl: Optional[str] = None
    canvas: Optional[str] = None
    fonts: List[str] = Field(default_factory=list)
    plugins: List[str] = Field(default_factory=list)
    audio_context: Optional[str] = None
    touch_support: bool = False
    hardware_concurrency: Optional[int] = None
    device_memory: Optional[float] = None
    color_depth: Optional[int] = None

    is_bot: bool = False
    timestamp: datetime = Field(default_factory=utc_now)
    fingerprint: str = Field(..., description="SHA-256 over the stable attributes")

    def to_snapshot(self) -> DeviceSnapshot:
        return DeviceSnapshot(
            browser=self.browser,
            os=self.os,
            device=self.device,
            engine=self.engine,
            cpu=self.cpu,
            platform=self.platform,
            screen=self.screen,
            timezone=self.timezone,
            user_agent=self.user_agent,
        )

    def summary(self) -> Dict[str, Any]:
        """Compact form stored on login attempts."""
        return {
            "browser": {"name": self.browser.name, "version": self.browser.version},
            "os": {"name": self.os.name, "version": self.os.version},
            "device": {
                "type": self.device.type,
                "vendor": self.device.vendor,
                "model": self.device.model,
            },
            "user_agent": self.user_agent,
        }
