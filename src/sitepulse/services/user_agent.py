"""Browser and OS labels for raw user-agent strings.

Only used to annotate breakdown rows for display; grouping always happens on
the raw string.
"""

import re

# Order matters: several browsers embed the tokens of the ones they derive from.
BROWSER_PATTERNS: list[tuple[str, str]] = [
    (r"Edg(?:e|A|iOS)?/(\d+)", "Edge"),
    (r"OPR/(\d+)", "Opera"),
    (r"SamsungBrowser/(\d+)", "Samsung Internet"),
    (r"Firefox/(\d+)", "Firefox"),
    (r"FxiOS/(\d+)", "Firefox"),
    (r"CriOS/(\d+)", "Chrome"),
    (r"Chrome/(\d+)", "Chrome"),
    (r"Version/(\d+)[\d.]* (?:Mobile/\S+ )?Safari/", "Safari"),
    (r"MSIE (\d+)", "Internet Explorer"),
    (r"Trident/.*rv:(\d+)", "Internet Explorer"),
    (r"curl/(\d+)", "curl"),
]

OS_PATTERNS: list[tuple[str, str]] = [
    (r"Windows NT 10\.0", "Windows 10"),
    (r"Windows NT 6\.3", "Windows 8.1"),
    (r"Windows NT 6\.1", "Windows 7"),
    (r"Windows", "Windows"),
    (r"iPhone OS (\d+)", "iOS"),
    (r"iPad.*OS (\d+)", "iOS"),
    (r"Android (\d+)", "Android"),
    (r"CrOS", "Chrome OS"),
    (r"Mac OS X (\d+)[_.](\d+)", "macOS"),
    (r"Linux", "Linux"),
]

UNKNOWN_BROWSER = "Unknown Browser"
UNKNOWN_OS = "Unknown OS"


def describe_browser(user_agent: str) -> str:
    for pattern, name in BROWSER_PATTERNS:
        match = re.search(pattern, user_agent)
        if match:
            return f"{name} {match.group(1)}"
    return UNKNOWN_BROWSER


def describe_os(user_agent: str) -> str:
    for pattern, name in OS_PATTERNS:
        match = re.search(pattern, user_agent)
        if not match:
            continue
        if name == "macOS":
            return f"{name} {match.group(1)}.{match.group(2)}"
        if match.groups():
            return f"{name} {match.group(1)}"
        return name
    return UNKNOWN_OS


def describe_user_agent(user_agent: str | None) -> tuple[str, str]:
    """Return ``(browser, os)`` labels such as ``("Chrome 120", "Windows 10")``."""
    if not user_agent:
        return UNKNOWN_BROWSER, UNKNOWN_OS
    return describe_browser(user_agent), describe_os(user_agent)
