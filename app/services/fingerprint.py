import hashlib
import re
from typing import Tuple

from app.schemas.device import DeviceEnvironment, DeviceInfo

UNKNOWN = "Unknown"

# First match wins: several vendors embed each other's tokens in their UA strings.
BROWSER_PATTERNS = (
    ("Firefox", ("Firefox",), re.compile(r"Firefox/([0-9.]+)")),
    ("Samsung Internet", ("SamsungBrowser",), re.compile(r"SamsungBrowser/([0-9.]+)")),
    ("Opera", ("Opera", "OPR"), re.compile(r"(?:Opera|OPR)/([0-9.]+)")),
    ("Internet Explorer", ("Trident",), re.compile(r"rv:([0-9.]+)")),
    ("Edge (Legacy)", ("Edge",), re.compile(r"Edge/([0-9.]+)")),
    ("Edge", ("Edg",), re.compile(r"Edg/([0-9.]+)")),
    ("Chrome", ("Chrome",), re.compile(r"Chrome/([0-9.]+)")),
    ("Safari", ("Safari",), re.compile(r"Version/([0-9.]+)")),
)

WINDOWS_NT_VERSIONS = (
    ("Windows NT 10.0", "10"),
    ("Windows NT 6.3", "8.1"),
    ("Windows NT 6.2", "8"),
    ("Windows NT 6.1", "7"),
)

TABLET_RE = re.compile(r"(tablet|ipad|playbook|silk)|(android(?!.*mobi))", re.IGNORECASE)
MOBILE_RE = re.compile(
    r"Mobile|Android|iP(hone|od)|IEMobile|BlackBerry|Kindle|Silk-Accelerated|(hpw|web)OS|Opera M(obi|ini)"
)


def parse_browser(user_agent: str) -> Tuple[str, str]:
    for name, tokens, version_re in BROWSER_PATTERNS:
        if any(token in user_agent for token in tokens):
            match = version_re.search(user_agent)
            return name, match.group(1) if match else UNKNOWN
    return UNKNOWN, UNKNOWN


def parse_os(user_agent: str) -> Tuple[str, str]:
    if "Win" in user_agent:
        for token, version in WINDOWS_NT_VERSIONS:
            if token in user_agent:
                return "Windows", version
        return "Windows", UNKNOWN
    if "Mac" in user_agent:
        match = re.search(r"Mac OS X ([0-9_]+)", user_agent)
        return "macOS", match.group(1).replace("_", ".") if match else UNKNOWN
    if "X11" in user_agent or "Linux" in user_agent:
        return "Linux", UNKNOWN
    if "Android" in user_agent:
        match = re.search(r"Android ([0-9.]+)", user_agent)
        return "Android", match.group(1) if match else UNKNOWN
    if "iOS" in user_agent or "iPhone" in user_agent or "iPad" in user_agent:
        match = re.search(r"OS ([0-9_]+)", user_agent)
        return "iOS", match.group(1).replace("_", ".") if match else UNKNOWN
    return UNKNOWN, UNKNOWN


def classify_device(user_agent: str) -> str:
    if TABLET_RE.search(user_agent):
        return "Tablet"
    if MOBILE_RE.search(user_agent):
        return "Mobile"
    return "Desktop"


def _signal(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def fingerprint_material(env: DeviceEnvironment) -> str:
    signals = [
        env.user_agent,
        env.language,
        f"{env.screen_width}x{env.screen_height}",
        env.color_depth,
        env.timezone,
        env.timezone_offset,
        env.session_storage,
        env.local_storage,
        env.hardware_concurrency or 0,
        env.device_memory or 0,
    ]
    return "|".join(_signal(s) for s in signals)


def compute_fingerprint(env: DeviceEnvironment) -> DeviceInfo:
    """
    Derive the device identity and display attributes from browser signals.

    Pure function: the same environment always yields the same SHA-256 hex
    fingerprint, and any changed signal yields a different one.
    """
    browser, browser_version = parse_browser(env.user_agent)
    os_name, os_version = parse_os(env.user_agent)
    digest = hashlib.sha256(fingerprint_material(env).encode("utf-8")).hexdigest()
    return DeviceInfo(
        fingerprint=digest,
        browser=browser,
        browser_version=browser_version,
        os=os_name,
        os_version=os_version,
        device_type=classify_device(env.user_agent),
        screen_resolution=f"{env.screen_width}x{env.screen_height}",
        timezone=env.timezone,
    )
